"""Tests for the spaced-repetition prioritizer."""

from conftest import NOW, concept
from dojo.records.models import (
    Belt,
    ReinforcementItem,
    ReinforcementPriority,
    SessionType,
    SkillProgress,
)
from dojo.scoring.repetition import prioritize, suggest_session_type


def make_skill(**concepts) -> SkillProgress:
    return SkillProgress(
        learner_id="l1", skill_name="Python", skill_slug="python", concepts=concepts
    )


def queued(name: str, priority: ReinforcementPriority) -> ReinforcementItem:
    return ReinforcementItem(concept=name, priority=priority)


class TestPrioritize:
    """Test focus list sources and ordering."""

    def test_empty(self):
        assert prioritize(make_skill(), NOW) == []

    def test_mastered_fresh_concept_not_listed(self):
        skill = make_skill(loops=concept(10, 10, contexts=["a", "b", "c"]))
        assert prioritize(skill, NOW) == []

    def test_queue_high_becomes_critical(self):
        skill = make_skill()
        skill.reinforcement_queue.append(queued("Error Handling", ReinforcementPriority.HIGH))
        items = prioritize(skill, NOW)
        assert len(items) == 1
        assert items[0].concept == "error_handling"
        assert items[0].priority == "critical"
        assert items[0].reason.startswith("reinforcement_queue")

    def test_decayed_concepts(self):
        skill = make_skill(
            slipping=concept(5, 2, days_ago=30),  # 0.4 * (2/3) ~ 0.27
            fading=concept(5, 3, days_ago=20),  # 0.6 * (7/9) ~ 0.47
        )
        items = {i.concept: i for i in prioritize(skill, NOW)}
        assert items["slipping"].priority == "high"
        assert items["fading"].priority == "medium"
        assert items["slipping"].reason.startswith("decayed")

    def test_never_seen_counts_as_decayed(self):
        skill = make_skill(ghost=concept(2, 0, days_ago=None))
        items = prioritize(skill, NOW)
        assert items[0].concept == "ghost"
        assert "never seen" in items[0].reason

    def test_context_gap(self):
        skill = make_skill(slicing=concept(4, 4, contexts=["cli"]))
        items = prioritize(skill, NOW)
        assert [(i.concept, i.priority) for i in items] == [("slicing", "low")]
        assert items[0].reason.startswith("context_gap")

    def test_weak_concepts(self):
        skill = make_skill(
            recursion=concept(4, 1, days_ago=1),
            closures=concept(4, 2, days_ago=1),
        )
        items = {i.concept: i for i in prioritize(skill, NOW)}
        assert items["recursion"].priority == "high"
        assert items["closures"].priority == "medium"
        assert items["closures"].reason.startswith("weak")

    def test_weak_ignores_concepts_above_current_belt(self):
        skill = make_skill(metaclasses=concept(4, 1, days_ago=1, belt_level=Belt.BLUE))
        assert prioritize(skill, NOW) == []

    def test_earlier_source_wins(self):
        skill = make_skill(recursion=concept(5, 1, days_ago=30))
        skill.reinforcement_queue.append(queued("recursion", ReinforcementPriority.LOW))
        items = prioritize(skill, NOW)
        assert len(items) == 1
        assert items[0].reason.startswith("reinforcement_queue")
        assert items[0].priority == "low"

    def test_sorted_by_priority_stable(self):
        skill = make_skill(
            gap=concept(4, 4, contexts=["cli"]),
            weak_a=concept(4, 2, days_ago=1),
            weak_b=concept(4, 2, days_ago=1),
        )
        skill.reinforcement_queue.append(queued("urgent", ReinforcementPriority.HIGH))
        items = prioritize(skill, NOW)
        assert [i.concept for i in items] == ["urgent", "weak_a", "weak_b", "gap"]
        assert [i.priority for i in items] == ["critical", "medium", "medium", "low"]


class TestSuggestSessionType:
    """Test session type suggestion."""

    def test_new_skill_onboards(self):
        assert suggest_session_type(make_skill()) == SessionType.ONBOARDING

    def test_training_by_default(self):
        assert suggest_session_type(make_skill(a=concept(1, 1))) == SessionType.TRAINING

    def test_assessment_when_available(self):
        skill = make_skill(a=concept(1, 1))
        skill.assessment_available = True
        assert suggest_session_type(skill) == SessionType.ASSESSMENT

    def test_heavy_queue_trains_first(self):
        skill = make_skill(a=concept(1, 1))
        skill.assessment_available = True
        for name in ["x", "y", "z"]:
            skill.reinforcement_queue.append(queued(name, ReinforcementPriority.HIGH))
        assert suggest_session_type(skill) == SessionType.TRAINING
