"""Tests for the console prompt implementation."""

from unittest.mock import patch

import pytest

from aicommit.prompt_io import ConsolePromptIO


@pytest.fixture
def io():
    return ConsolePromptIO()


class TestConfirm:

    @pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("maybe", False)])
    def test_answers(self, io, answer, expected):
        with patch("builtins.input", return_value=answer):
            assert io.confirm("Continue?") is expected

    def test_empty_uses_default(self, io):
        with patch("builtins.input", return_value="") as mock_input:
            assert io.confirm("Push?", default=False) is False
        assert mock_input.call_args.args[0] == "Push? [y/N] "

    def test_eof_uses_default(self, io):
        with patch("builtins.input", side_effect=EOFError):
            assert io.confirm("Continue?") is True


class TestChooseOne:

    CHOICES = ["feat: add parser", "fix: parser edge case", "Write my own message"]

    def test_select_by_number(self, io, capsys):
        with patch("builtins.input", return_value="2"):
            assert io.choose_one("Pick a message:", self.CHOICES) == "fix: parser edge case"

        out = capsys.readouterr().out
        assert "1) feat: add parser (recommended)" in out
        assert "3) Write my own message" in out

    def test_enter_selects_first(self, io):
        with patch("builtins.input", return_value=""):
            assert io.choose_one("Pick:", self.CHOICES) == "feat: add parser"

    def test_invalid_input_reprompts(self, io, capsys):
        with patch("builtins.input", side_effect=["abc", "9", "3"]):
            assert io.choose_one("Pick:", self.CHOICES) == "Write my own message"

        out = capsys.readouterr().out
        assert "Please enter a valid number" in out
        assert "between 1 and 3" in out

    def test_interrupt_selects_first(self, io):
        with patch("builtins.input", side_effect=KeyboardInterrupt):
            assert io.choose_one("Pick:", self.CHOICES) == "feat: add parser"

    def test_empty_choices(self, io):
        with pytest.raises(ValueError):
            io.choose_one("Pick:", [])


class TestFreeText:

    def test_strips(self, io):
        with patch("builtins.input", return_value="  chore: tidy  "):
            assert io.free_text_input("Message:") == "chore: tidy"

    def test_eof_is_empty(self, io):
        with patch("builtins.input", side_effect=EOFError):
            assert io.free_text_input("Message:") == ""

    def test_show(self, io, capsys):
        io.show("hello")
        assert capsys.readouterr().out == "hello\n"
