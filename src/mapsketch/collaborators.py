"""Capabilities the core consumes but does not implement.

``Notifier`` is the outcome sink (toasts in a browser, log lines here).
``AnswerSource`` is the question-answers subsystem whose text is bundled
into saved files. Default implementations are provided for headless use.
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger

LEVELS = ("info", "success", "warning", "error")


class Notifier(Protocol):
    def notify(self, message: str, level: str = "info") -> None: ...


class AnswerSource(Protocol):
    def get_question_answers(self) -> dict[str, str]: ...

    def set_question_answers(self, answers: dict[str, str]) -> None: ...


class LogNotifier:
    """Notifier that writes every message to the log at a matching level."""

    def notify(self, message: str, level: str = "info") -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown notification level: {level}")
        if level == "error":
            logger.error(message)
        elif level == "warning":
            logger.warning(message)
        elif level == "success":
            logger.success(message)
        else:
            logger.info(message)


class RecordingNotifier:
    """Notifier that keeps (level, message) pairs, for adapters that poll."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, message: str, level: str = "info") -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown notification level: {level}")
        self.messages.append((level, message))

    def last(self) -> tuple[str, str] | None:
        return self.messages[-1] if self.messages else None


class QuestionAnswers:
    """In-memory answer sheet keyed by question id (``question1`` ...).

    Blank answers are not reported, so an untouched sheet saves as ``{}``.
    Loading replaces only the questions present in the file.
    """

    def __init__(self, answers: dict[str, str] | None = None) -> None:
        self._answers: dict[str, str] = dict(answers or {})

    def get_question_answers(self) -> dict[str, str]:
        return {
            key: text.strip()
            for key, text in self._answers.items()
            if isinstance(text, str) and text.strip()
        }

    def set_question_answers(self, answers: dict[str, str]) -> None:
        for key, text in answers.items():
            if isinstance(text, str) and text:
                self._answers[str(key)] = text

    def answer(self, question_id: str, text: str) -> None:
        self._answers[question_id] = text

    def get(self, question_id: str) -> str:
        return self._answers.get(question_id, "")
