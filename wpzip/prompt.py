"""Questions asked to the operator when something can't be detected."""
from abc import ABC, abstractmethod

import click


class Prompter(ABC):
    @abstractmethod
    def prompt(self, question: str) -> str:
        """Ask a question, returning the answer, possibly empty."""

    @abstractmethod
    def prompt_password(self, question: str) -> str:
        """Ask a question without echoing the answer."""


class ClickPrompter(Prompter):
    """Prompter reading answers from the terminal."""

    def prompt(self, question: str) -> str:
        answer: str = click.prompt(
            question, default="", show_default=False, prompt_suffix="\n"
        )
        return answer.strip()

    def prompt_password(self, question: str) -> str:
        answer: str = click.prompt(
            question,
            default="",
            show_default=False,
            hide_input=True,
            prompt_suffix="\n",
        )
        return answer
