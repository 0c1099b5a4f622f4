"""Tests for skill-name normalization."""

import pytest

from dojo.records.skills import (
    is_music_category,
    is_tech_category,
    normalize_skill,
    slugify,
)


class TestNormalizeSkill:
    """Test alias resolution and fallback naming."""

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("js", ("JavaScript", "javascript")),
            ("  JS ", ("JavaScript", "javascript")),
            ("Vanilla   JS", ("JavaScript", "javascript")),
            ("py", ("Python", "python")),
            ("golang", ("Go", "go")),
            ("C#", ("C#", "csharp")),
            ("node.js", ("Node.js", "nodejs")),
        ],
    )
    def test_aliases(self, query, expected):
        assert normalize_skill(query) == expected

    def test_unknown_lowercase_is_title_cased(self):
        assert normalize_skill("jazz piano") == ("Jazz Piano", "jazz-piano")

    def test_unknown_keeps_learner_casing(self):
        assert normalize_skill("GraphQL") == ("GraphQL", "graphql")

    def test_blank_rejected(self):
        with pytest.raises(ValueError):
            normalize_skill("   ")


class TestSlugify:
    """Test slug generation."""

    def test_punctuation_collapses(self):
        assert slugify("Data Structures & Algorithms!") == "data-structures-algorithms"


class TestCategories:
    """Test category helpers."""

    def test_tech(self):
        assert is_tech_category("technology")
        assert is_tech_category(None)
        assert not is_tech_category("cooking")

    def test_music(self):
        assert is_music_category("Music")
        assert not is_music_category("technology")
        assert not is_music_category(None)
