"""Skill-name normalization.

Maps the many ways learners type a skill ("js", "Vanilla JS", "es6") onto a
canonical display name and URL-safe slug so a learner cannot enroll in the
same skill twice under different spellings.
"""

import re

# Canonical (name, slug) per alias. Keys are lowercase and stripped.
SKILL_ALIASES: dict[str, tuple[str, str]] = {
    "js": ("JavaScript", "javascript"),
    "javascript": ("JavaScript", "javascript"),
    "vanilla js": ("JavaScript", "javascript"),
    "es6": ("JavaScript", "javascript"),
    "ecmascript": ("JavaScript", "javascript"),
    "ts": ("TypeScript", "typescript"),
    "typescript": ("TypeScript", "typescript"),
    "python": ("Python", "python"),
    "python3": ("Python", "python"),
    "py": ("Python", "python"),
    "ruby": ("Ruby", "ruby"),
    "rb": ("Ruby", "ruby"),
    "rust": ("Rust", "rust"),
    "rs": ("Rust", "rust"),
    "go": ("Go", "go"),
    "golang": ("Go", "go"),
    "java": ("Java", "java"),
    "c#": ("C#", "csharp"),
    "csharp": ("C#", "csharp"),
    "c sharp": ("C#", "csharp"),
    "c++": ("C++", "cpp"),
    "cpp": ("C++", "cpp"),
    "c": ("C", "c"),
    "sql": ("SQL", "sql"),
    "mysql": ("SQL", "sql"),
    "postgres": ("SQL", "sql"),
    "postgresql": ("SQL", "sql"),
    "sqlite": ("SQL", "sql"),
    "react": ("React", "react"),
    "reactjs": ("React", "react"),
    "react.js": ("React", "react"),
    "node": ("Node.js", "nodejs"),
    "nodejs": ("Node.js", "nodejs"),
    "node.js": ("Node.js", "nodejs"),
    "kotlin": ("Kotlin", "kotlin"),
    "kt": ("Kotlin", "kotlin"),
    "haskell": ("Haskell", "haskell"),
    "hs": ("Haskell", "haskell"),
    "bash": ("Bash", "bash"),
    "shell": ("Bash", "bash"),
    "sh": ("Bash", "bash"),
    "zsh": ("Bash", "bash"),
    "css": ("CSS", "css"),
    "scss": ("CSS", "css"),
    "sass": ("CSS", "css"),
    "html": ("HTML", "html"),
    "regex": ("Regular Expressions", "regex"),
    "regexp": ("Regular Expressions", "regex"),
    "regular expressions": ("Regular Expressions", "regex"),
}

# Categories whose sessions use the code editor
TECH_CATEGORIES = {"technology", "programming", "data"}
MUSIC_CATEGORIES = {"music"}

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lowercase, dash-separated slug."""
    return _NON_SLUG.sub("-", value.lower()).strip("-")


def normalize_skill(query: str) -> tuple[str, str]:
    """Resolve a free-form skill name to (display name, slug).

    Known aliases map to their canonical entry; anything else keeps the
    learner's wording (title-cased when it was all lowercase).

    Raises:
        ValueError: If the query is blank
    """
    key = " ".join(query.lower().split())
    if not key:
        raise ValueError("Skill name cannot be empty")
    if key in SKILL_ALIASES:
        return SKILL_ALIASES[key]

    name = " ".join(query.split())
    if name.islower():
        name = name.title()
    return name, slugify(name)


def is_tech_category(category: str | None) -> bool:
    return (category or "technology").lower() in TECH_CATEGORIES


def is_music_category(category: str | None) -> bool:
    return (category or "").lower() in MUSIC_CATEGORIES
