"""Prompt collaborator - pick one of a list of strings, or confirm an action."""

from collections import deque
from typing import Callable, Protocol


class Prompt(Protocol):
    def choose(self, title: str, options: list[str]) -> int | None:
        """Return the index of the chosen option, or None if cancelled."""

    def confirm(self, message: str) -> bool:
        """Return True if the user accepts."""

    def ask(self, message: str) -> str | None:
        """Return free text, or None if cancelled."""


class ConsolePrompt:
    """Numbered-list prompt on stdin/stdout. An empty answer or ``q`` cancels."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
    ):
        self._input = input_func
        self._output = output_func

    def _read(self, message: str) -> str | None:
        try:
            return self._input(message)
        except (EOFError, KeyboardInterrupt):
            return None

    def choose(self, title: str, options: list[str]) -> int | None:
        if not options:
            return None
        self._output(title)
        for i, option in enumerate(options, start=1):
            self._output(f"  {i}. {option}")

        while True:
            answer = self._read("> ")
            if answer is None:
                return None
            answer = answer.strip()
            if not answer or answer.lower() == "q":
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return int(answer) - 1
            self._output(f"Enter a number between 1 and {len(options)} (empty to cancel)")

    def confirm(self, message: str) -> bool:
        answer = self._read(f"{message} [y/N] ")
        return answer is not None and answer.strip().lower() in ("y", "yes")

    def ask(self, message: str) -> str | None:
        answer = self._read(f"{message}: ")
        if answer is None or not answer.strip():
            return None
        return answer.strip()


class ScriptedPrompt:
    """Prompt that replays pre-recorded answers; used by tests and non-interactive callers.

    When a queue runs out, ``choose`` and ``ask`` cancel and ``confirm`` returns
    ``default_confirm``.
    """

    def __init__(
        self,
        choices: list[int | None] | None = None,
        confirms: list[bool] | None = None,
        answers: list[str | None] | None = None,
        default_confirm: bool = False,
    ):
        self.choices = deque(choices or [])
        self.confirms = deque(confirms or [])
        self.answers = deque(answers or [])
        self.default_confirm = default_confirm
        self.seen: list[tuple[str, list[str]]] = []

    def choose(self, title: str, options: list[str]) -> int | None:
        self.seen.append((title, list(options)))
        if not self.choices:
            return None
        choice = self.choices.popleft()
        if choice is not None and not 0 <= choice < len(options):
            return None
        return choice

    def confirm(self, message: str) -> bool:
        self.seen.append((message, []))
        if not self.confirms:
            return self.default_confirm
        return self.confirms.popleft()

    def ask(self, message: str) -> str | None:
        self.seen.append((message, []))
        if not self.answers:
            return None
        return self.answers.popleft()
