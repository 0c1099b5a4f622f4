"""Exception hierarchy for DOJO.

Conflict and invalid-state errors are recoverable: the API turns them into
409/400 responses. Only unexpected failures (the database going away)
propagate as server errors.
"""


class DojoError(Exception):
    """Base class for all DOJO errors."""


class SkillNotFoundError(DojoError):
    """No skill progress record with the given ID."""


class SkillAlreadyEnrolledError(DojoError):
    """The learner already trains this skill."""


class SessionNotFoundError(DojoError):
    """No session with the given ID."""


class InvalidSessionStateError(DojoError):
    """The session is not in a state that allows the requested action."""


class SessionConflictError(DojoError):
    """Another turn is already being processed for this session.

    Retryable: the caller should try again once the current turn finishes.
    """

    retryable = True


class ToolError(DojoError):
    """A tool call could not be applied."""


class ReasoningServiceError(DojoError):
    """The reasoning service failed or disconnected mid-stream."""
