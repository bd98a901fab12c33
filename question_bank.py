"""Read-only question catalog: subjects -> subtopics -> questions."""

import json
import logging
import os
from pathlib import Path
from typing import Iterable

from tracker_model import Question, Subject, Subtopic

logger = logging.getLogger(__name__)

PROJECT_DIR = Path(__file__).resolve().parent
QUESTION_BANK_PATH = Path(
    os.getenv("QUIZTRACK_QUESTION_BANK", str(PROJECT_DIR / "data" / "subjects.json"))
)


class ReferenceNotFound(KeyError):
    """A subject, subtopic or question id that the catalog does not contain."""


class QuestionBank:
    """Catalog loaded once and never mutated."""

    def __init__(self, subjects: Iterable[Subject]):
        self._subjects: dict[str, Subject] = {s.subject_id: s for s in subjects}

    @classmethod
    def from_records(cls, records: list[dict]) -> "QuestionBank":
        return cls(Subject.model_validate(r) for r in records)

    @classmethod
    def load(cls, path: Path = QUESTION_BANK_PATH) -> "QuestionBank":
        data = json.loads(Path(path).read_text())
        bank = cls.from_records(data)
        logger.info(f"Loaded {len(bank.subjects)} subjects from {path}")
        return bank

    @property
    def subjects(self) -> list[Subject]:
        return list(self._subjects.values())

    def get_subject(self, subject_id: str) -> Subject:
        try:
            return self._subjects[subject_id]
        except KeyError:
            raise ReferenceNotFound(f"Unknown subject '{subject_id}'") from None

    def get_subtopic(self, subject_id: str, subtopic_id: str) -> Subtopic:
        subject = self.get_subject(subject_id)
        for subtopic in subject.subtopics:
            if subtopic.subtopic_id == subtopic_id:
                return subtopic
        raise ReferenceNotFound(f"Unknown subtopic '{subtopic_id}' in '{subject_id}'")

    def get_question(self, subject_id: str, subtopic_id: str, question_id: str) -> Question:
        for question in self.get_subtopic(subject_id, subtopic_id).questions:
            if question.id == question_id:
                return question
        raise ReferenceNotFound(
            f"Unknown question '{question_id}' in '{subject_id}/{subtopic_id}'"
        )

    def subject_title(self, subject_id: str) -> str:
        subject = self._subjects.get(subject_id)
        return subject.title if subject and subject.title else subject_id

    def question_count(self, subject_id: str) -> int:
        return sum(len(st.questions) for st in self.get_subject(subject_id).subtopics)
