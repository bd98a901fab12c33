"""Tests for kv_store.py and question_bank.py."""

import json

import pytest

from kv_store import (
    FileStore,
    MemoryStore,
    StoreUnavailable,
    delete_record,
    read_record,
    write_record,
)
from question_bank import QuestionBank, ReferenceNotFound
from tracker_model import Profile


class BrokenStore:
    def get(self, key):
        raise StoreUnavailable("disabled")

    def set(self, key, value):
        raise StoreUnavailable("quota exceeded")

    def delete(self, key):
        raise StoreUnavailable("disabled")


# ---------------------------------------------------------------------------
# Stores and record helpers
# ---------------------------------------------------------------------------

class TestFileStore:
    def test_round_trip(self, tmp_path):
        store = FileStore(tmp_path / "data")
        profile = Profile(student_id="s1", name="Ada")
        assert write_record(store, "quiztrack_profile", profile) is True
        assert (tmp_path / "data" / "quiztrack_profile.json").exists()
        assert read_record(store, "quiztrack_profile", Profile) == profile

    def test_missing_key(self, tmp_path):
        assert FileStore(tmp_path).get("nothing") is None

    def test_delete(self, tmp_path):
        store = FileStore(tmp_path)
        store.set("k", "{}")
        store.delete("k")
        store.delete("k")
        assert store.get("k") is None

    def test_unwritable_directory_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(StoreUnavailable):
            FileStore(blocker).set("k", "{}")


class TestRecordHelpers:
    def test_missing_record_is_none(self):
        assert read_record(MemoryStore(), "k", Profile) is None

    def test_corrupt_json_is_none(self):
        store = MemoryStore({"k": "{not json"})
        assert read_record(store, "k", Profile) is None

    def test_invalid_schema_is_none(self):
        store = MemoryStore({"k": json.dumps({"name": "no id"})})
        assert read_record(store, "k", Profile) is None

    def test_unavailable_store_degrades(self):
        store = BrokenStore()
        assert read_record(store, "k", Profile) is None
        assert write_record(store, "k", Profile(student_id="s", name="n")) is False
        assert delete_record(store, "k") is False

    def test_undecodable_file_degrades(self, tmp_path):
        (tmp_path / "quiztrack_profile.json").write_bytes(b"\xff\xfe{bad")
        store = FileStore(tmp_path)
        with pytest.raises(StoreUnavailable):
            store.get("quiztrack_profile")
        assert read_record(store, "quiztrack_profile", Profile) is None


# ---------------------------------------------------------------------------
# QuestionBank
# ---------------------------------------------------------------------------

CATALOG = [
    {
        "subjectId": "math",
        "title": "Mathematics",
        "subtopics": [
            {
                "subtopicId": "algebra",
                "title": "Algebra",
                "difficulty": "medium",
                "questions": [
                    {"id": "a1", "type": "mcq", "question": "1+1?", "options": ["1", "2"],
                     "correctAnswer": 1, "answerGuide": "2"},
                    {"id": "a2", "type": "written", "question": "Explain.", "answerGuide": "..."},
                ],
            }
        ],
    }
]


class TestQuestionBank:
    def test_lookups(self):
        bank = QuestionBank.from_records(CATALOG)
        assert bank.get_subject("math").title == "Mathematics"
        assert bank.get_subtopic("math", "algebra").difficulty == "medium"
        question = bank.get_question("math", "algebra", "a1")
        assert question.type == "multiple-choice"
        assert question.correct_answer == 1
        assert bank.question_count("math") == 2

    def test_unknown_references(self):
        bank = QuestionBank.from_records(CATALOG)
        with pytest.raises(ReferenceNotFound):
            bank.get_subject("history")
        with pytest.raises(ReferenceNotFound):
            bank.get_subtopic("math", "calculus")
        with pytest.raises(ReferenceNotFound):
            bank.get_question("math", "algebra", "zz")

    def test_subject_title_falls_back_to_id(self):
        bank = QuestionBank.from_records(CATALOG)
        assert bank.subject_title("math") == "Mathematics"
        assert bank.subject_title("history") == "history"

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "subjects.json"
        path.write_text(json.dumps(CATALOG))
        bank = QuestionBank.load(path)
        assert [s.subject_id for s in bank.subjects] == ["math"]
