"""Session-flow tests for the MCP tools against an in-memory store."""

import pytest

import tracker_mcp_server as server
from kv_store import STORAGE_KEYS, MemoryStore, StoreUnavailable
from question_bank import QuestionBank
from tracker import StudyTracker


class FailingHistoryStore(MemoryStore):
    def set(self, key, value):
        if key == STORAGE_KEYS["test_history"]:
            raise StoreUnavailable("quota exceeded")
        super().set(key, value)


def call(tool, **kwargs):
    """Run a tool's underlying function, whether or not the decorator wrapped it."""
    return getattr(tool, "fn", tool)(**kwargs)


@pytest.fixture
def tracker(monkeypatch):
    bank = QuestionBank.from_records([
        {"subjectId": "math", "title": "Mathematics", "subtopics": [
            {"subtopicId": "algebra", "title": "Algebra", "questions": [
                {"id": f"a{i}", "type": "mcq", "options": ["x", "y", "z"], "correctAnswer": 2}
                for i in range(3)
            ]},
            {"subtopicId": "essay", "title": "Essay", "questions": [
                {"id": "e1", "type": "written", "answerGuide": "Anything."},
            ]},
        ]},
    ])
    tracker = StudyTracker(MemoryStore(), bank)
    monkeypatch.setattr(server, "_tracker", lambda: tracker)
    server._sessions.clear()
    yield tracker
    server._sessions.clear()


def start(subtopic_id="algebra") -> dict:
    assert call(server.login, student_id="s-1", name="Ada")["logged_in"] is True
    started = call(server.start_practice, subject_id="math", subtopic_id=subtopic_id)
    assert started["started"] is True
    return started


# ---------------------------------------------------------------------------
# Practice flow
# ---------------------------------------------------------------------------

class TestPracticeTools:
    def test_start_submit_finish(self, tracker):
        started = start()
        session_id = started["session_id"]
        assert started["question"]["number"] == 1
        assert started["question"]["of"] == 3

        for _ in range(3):
            reply = call(server.submit_answer, session_id=session_id, answer=2, time_taken_ms=100)
            assert reply["is_correct"] is True
        assert reply["finished"] is True
        assert reply["next_question"] is None

        finished = call(server.finish_practice, session_id=session_id)
        assert finished["test_id"].startswith("test_")
        assert finished["history_saved"] is True
        assert finished["profile_saved"] is True
        assert finished["score_percent"] == 100
        assert session_id not in server._sessions
        assert tracker.history.tests()[0].id == finished["test_id"]

    def test_digit_string_answer_counts_as_index(self, tracker):
        session_id = start()["session_id"]
        reply = call(server.submit_answer, session_id=session_id, answer=" 2", time_taken_ms=10)
        assert reply["is_correct"] is True
        assert tracker.ledger.load().subjects["math"]["algebra"].correct == 1

    def test_non_numeric_choice_is_an_error(self, tracker):
        session_id = start()["session_id"]
        reply = call(server.submit_answer, session_id=session_id, answer="y", time_taken_ms=10)
        assert "error" in reply
        assert tracker.ledger.load().subjects == {}

    def test_written_answer_left_as_text(self, tracker):
        session_id = start("essay")["session_id"]
        reply = call(server.submit_answer, session_id=session_id,
                     answer="12345678901", time_taken_ms=10)
        assert reply["is_correct"] is True

    def test_unknown_session(self, tracker):
        assert "error" in call(server.submit_answer, session_id="nope", answer=1)
        assert "error" in call(server.finish_practice, session_id="nope")

    def test_finish_with_unanswered_questions(self, tracker):
        session_id = start()["session_id"]
        assert "error" in call(server.finish_practice, session_id=session_id)
        assert session_id in server._sessions

    def test_unsaved_history_is_reported(self, monkeypatch, tracker):
        failing = StudyTracker(FailingHistoryStore(), tracker.bank)
        monkeypatch.setattr(server, "_tracker", lambda: failing)
        session_id = start("essay")["session_id"]
        call(server.submit_answer, session_id=session_id, answer="short", time_taken_ms=10)

        finished = call(server.finish_practice, session_id=session_id)
        assert finished["history_saved"] is False
        assert finished["profile_saved"] is True
        assert failing.history.tests() == []

    def test_start_requires_login(self, tracker):
        reply = call(server.start_practice, subject_id="math", subtopic_id="algebra")
        assert reply["started"] is False
        assert "error" in reply

    def test_login_clears_open_sessions(self, tracker):
        start()
        assert server._sessions
        call(server.login, student_id="s-2", name="Grace")
        assert server._sessions == {}
