"""
Interactive terminal I/O.

The workflow talks to the user only through a PromptIO, so tests can
swap in a scripted implementation.
"""

from typing import Protocol


class PromptIO(Protocol):
    """What the workflow needs from an interactive surface."""

    def confirm(self, prompt: str, default: bool = True) -> bool: ...

    def choose_one(self, prompt: str, choices: list[str]) -> str: ...

    def free_text_input(self, prompt: str) -> str: ...

    def show(self, text: str) -> None: ...


class ConsolePromptIO:
    """PromptIO on input() and print()."""

    def confirm(self, prompt: str, default: bool = True) -> bool:
        suffix = "[Y/n]" if default else "[y/N]"
        try:
            response = input(f"{prompt} {suffix} ").strip().lower()
        except (KeyboardInterrupt, EOFError):
            return default
        if not response:
            return default
        return response in ("y", "yes")

    def choose_one(self, prompt: str, choices: list[str]) -> str:
        """
        Show a numbered menu and return the chosen entry.

        Enter without a selection returns the first entry, as does an
        interrupt or end of input.

        Args:
            prompt: Heading shown above the menu
            choices: Entries to choose from (must not be empty)

        Returns:
            str: The selected entry
        """
        if not choices:
            raise ValueError("choose_one needs at least one choice")

        print(f"\n{prompt}")
        for i, choice in enumerate(choices, 1):
            marker = " (recommended)" if i == 1 else ""
            print(f"  {i}) {choice}{marker}")
        print()

        while True:
            try:
                answer = input(f"Select [1-{len(choices)}, default=1]: ").strip()

                if not answer:
                    return choices[0]

                idx = int(answer) - 1
                if 0 <= idx < len(choices):
                    return choices[idx]
                print(f"Please enter a number between 1 and {len(choices)}")

            except ValueError:
                print("Please enter a valid number")
            except (KeyboardInterrupt, EOFError):
                return choices[0]

    def free_text_input(self, prompt: str) -> str:
        try:
            return input(f"{prompt} ").strip()
        except (KeyboardInterrupt, EOFError):
            return ""

    def show(self, text: str) -> None:
        print(text)
