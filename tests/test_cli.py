"""Tests for the dojo CLI."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import concept
from dojo.api.cli import app
from dojo.records.models import Belt, ReinforcementItem, ReinforcementPriority

runner = CliRunner()

# Wide enough that Rich never truncates table cells
WIDE = {"COLUMNS": "200"}


@pytest.fixture
def cli_store(test_store):
    """Point the CLI at the test store."""
    with patch("dojo.api.cli._get_store", return_value=test_store):
        yield test_store


class TestStatusCommand:
    """Tests for dojo status."""

    def test_lists_skills(self, cli_store, test_skill):
        result = runner.invoke(app, ["status", "--learner", "learner-1"], env=WIDE)
        assert result.exit_code == 0
        assert "Python" in result.output
        assert "white" in result.output
        assert "onboarding" in result.output

    def test_unknown_learner(self, cli_store):
        result = runner.invoke(app, ["status", "-l", "nobody"], env=WIDE)
        assert result.exit_code == 1
        assert "not training any skills" in result.output

    def test_learner_required(self, cli_store):
        result = runner.invoke(app, ["status"], env=WIDE)
        assert result.exit_code != 0


class TestFocusCommand:
    """Tests for dojo focus."""

    def test_shows_queue(self, cli_store, test_skill):
        test_skill.reinforcement_queue.append(
            ReinforcementItem(concept="closures", priority=ReinforcementPriority.HIGH)
        )
        cli_store.update_skill(test_skill)

        result = runner.invoke(app, ["focus", test_skill.id], env=WIDE)

        assert result.exit_code == 0
        assert "closures" in result.output
        assert "critical" in result.output

    def test_limit(self, cli_store, test_skill):
        for name in ["a", "b", "c"]:
            test_skill.reinforcement_queue.append(ReinforcementItem(concept=name))
        cli_store.update_skill(test_skill)

        result = runner.invoke(app, ["focus", test_skill.id, "-n", "2"], env=WIDE)

        assert result.exit_code == 0
        assert "... and 1 more" in result.output

    def test_nothing_to_do(self, cli_store, test_skill):
        result = runner.invoke(app, ["focus", test_skill.id], env=WIDE)
        assert result.exit_code == 0
        assert "Nothing needs attention" in result.output

    def test_unknown_skill(self, cli_store):
        result = runner.invoke(app, ["focus", "missing"], env=WIDE)
        assert result.exit_code == 1


class TestBeltCommand:
    """Tests for dojo belt."""

    def test_requirements_table(self, cli_store, test_skill):
        test_skill.concepts = {"loops": concept(3, 3, days_ago=None)}
        test_skill.assessment_available = True
        cli_store.update_skill(test_skill)

        result = runner.invoke(app, ["belt", test_skill.id], env=WIDE)

        assert result.exit_code == 0
        assert "white -> yellow" in result.output
        assert "Not yet" in result.output
        assert "Sessions" in result.output
        assert "An assessment is available" in result.output

    def test_black_belt(self, cli_store, test_skill):
        test_skill.current_belt = Belt.BLACK
        cli_store.update_skill(test_skill)

        result = runner.invoke(app, ["belt", test_skill.id], env=WIDE)

        assert result.exit_code == 0
        assert "highest belt" in result.output
