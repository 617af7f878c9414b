"""Tests for stratus.deploy.prompts."""

import io
from unittest.mock import patch

import pytest
from rich.console import Console

from stratus.core.errors import OrchestrationError
from stratus.deploy.prompts import AutoPrompter, ConsolePrompter, parse_choice

OPTIONS = ["Reuse existing", "Change location", "Abort"]


class TestParseChoice:
    def test_valid(self):
        assert parse_choice("2", 3) == 1

    def test_surrounding_whitespace(self):
        assert parse_choice(" 3 ", 3) == 2

    @pytest.mark.parametrize("answer", ["abc", "", "0", "4", "-1", "1.5", "²"])
    def test_invalid(self, answer):
        assert parse_choice(answer, 3) is None


class TestConsolePrompter:
    def _prompter(self):
        buffer = io.StringIO()
        return ConsolePrompter(Console(file=buffer, width=120)), buffer

    def test_returns_selected_index(self):
        prompter, buffer = self._prompter()
        with patch("stratus.deploy.prompts.Prompt.ask", return_value="2"):
            assert prompter.choose("Storage name taken", OPTIONS) == 1
        output = buffer.getvalue()
        assert "Storage name taken" in output
        assert "3. Abort" in output

    @pytest.mark.parametrize(
        ("answers", "expected"),
        [
            (["x", "1"], 0),
            (["9", "2"], 1),
            (["²", "3"], 2),
        ],
    )
    def test_reprompts_after_invalid_answer(self, answers, expected):
        prompter, buffer = self._prompter()
        with patch("stratus.deploy.prompts.Prompt.ask", side_effect=answers) as ask:
            assert prompter.choose("Conflict", OPTIONS) == expected
        assert ask.call_count == 2
        assert "Invalid choice" in buffer.getvalue()

    def test_confirm_delegates(self):
        prompter, _ = self._prompter()
        with patch("stratus.deploy.prompts.Confirm.ask", return_value=True) as ask:
            assert prompter.confirm("Delete 2 resources?") is True
        assert ask.call_args.kwargs["default"] is False


class TestAutoPrompter:
    def test_fixed_choice(self):
        assert AutoPrompter(choice=1).choose("Conflict", OPTIONS) == 1

    def test_without_choice_raises(self):
        with pytest.raises(OrchestrationError):
            AutoPrompter().choose("Conflict", OPTIONS)

    def test_out_of_range_choice_raises(self):
        with pytest.raises(OrchestrationError):
            AutoPrompter(choice=5).choose("Conflict", OPTIONS)

    def test_confirm_returns_approval(self):
        assert AutoPrompter(approve=True).confirm("Delete?") is True
        assert AutoPrompter().confirm("Delete?", default=True) is False
