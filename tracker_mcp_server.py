"""
Quiz Tracker MCP Server.
Exposes tools for login, practice sessions, progress, study plans and reports.
"""

import os
import sys

# Ensure sibling modules are importable
sys.path.insert(0, os.path.dirname(__file__))

import logging
from functools import lru_cache
from typing import Optional, Union

from fastmcp import FastMCP

from analytics import (
    build_progress_report,
    difficulty_performance,
    filter_history,
    format_duration,
    overall_stats,
    paginate,
    performance_insights,
    report_filename,
    subject_breakdown,
    subtopic_progress,
    time_analytics,
)
from kv_store import FileStore
from question_bank import QuestionBank, ReferenceNotFound
from tracker import NotLoggedIn, PracticeSession, StudyTracker

logger = logging.getLogger("tracker_mcp_server")

mcp = FastMCP("QuizTracker")

# In-flight practice sessions by id.  Abandoned ones simply never finish.
_sessions: dict[str, PracticeSession] = {}


@lru_cache(maxsize=1)
def _bank() -> QuestionBank:
    return QuestionBank.load()


def _tracker() -> StudyTracker:
    return StudyTracker(FileStore(), _bank())


def _question_view(session: PracticeSession) -> Optional[dict]:
    question = session.current_question
    if question is None:
        return None
    return {
        "id": question.id,
        "type": question.type,
        "question": question.question,
        "options": question.options,
        "number": session.index + 1,
        "of": len(session.questions),
    }


def _coerce_answer(session: PracticeSession, answer: Union[int, str]) -> Union[int, str]:
    """Clients may send an option index as text; turn "2" into 2."""
    question = session.current_question
    if question is None or question.type != "multiple-choice" or not isinstance(answer, str):
        return answer
    if not answer.strip().isdigit():
        raise ValueError(f"Multiple-choice answers must be an option index, got '{answer}'.")
    return int(answer)


@mcp.tool()
def login(student_id: str, name: str) -> dict:
    """
    Log in with a student ID and name.
    Any previous identity's data in the store is discarded.
    """
    try:
        profile = _tracker().login(student_id, name)
    except ValueError as e:
        return {"logged_in": False, "error": str(e)}
    _sessions.clear()
    return {"logged_in": True, "profile": profile.model_dump()}


@mcp.tool()
def logout() -> dict:
    """Delete the profile, progress, test history and study plan."""
    cleared = _tracker().logout()
    _sessions.clear()
    return {"logged_out": True, "cleared": cleared}


@mcp.tool()
def get_profile() -> dict:
    """Return the current profile with its overall stats."""
    tracker = _tracker()
    profile = tracker.current_profile()
    if profile is None:
        return {"error": "Not logged in."}
    return {
        "profile": profile.model_dump(),
        "stats": overall_stats(tracker.ledger.load()),
    }


@mcp.tool()
def update_profile_name(name: str) -> dict:
    """Rename the logged-in student."""
    try:
        profile = _tracker().profiles.rename(name)
    except ValueError as e:
        return {"updated": False, "error": str(e)}
    if profile is None:
        return {"updated": False, "error": "Not logged in."}
    return {"updated": True, "name": profile.name}


@mcp.tool()
def list_subjects() -> list[dict]:
    """List catalog subjects with their subtopics and question counts."""
    return [
        {
            "subject_id": s.subject_id,
            "title": s.title,
            "icon": s.icon,
            "question_count": sum(len(st.questions) for st in s.subtopics),
            "subtopics": [
                {"subtopic_id": st.subtopic_id, "title": st.title, "difficulty": st.difficulty}
                for st in s.subtopics
            ],
        }
        for s in _bank().subjects
    ]


@mcp.tool()
def get_subject_progress(subject_id: str) -> dict:
    """Per-subtopic accuracy and remaining questions for one subject."""
    tracker = _tracker()
    try:
        rows = subtopic_progress(tracker.ledger.load(), tracker.bank, subject_id)
    except ReferenceNotFound as e:
        return {"error": e.args[0]}
    return {"subject_id": subject_id, "subtopics": rows}


@mcp.tool()
def start_practice(subject_id: str, subtopic_id: str) -> dict:
    """
    Start a practice session of up to 10 unattempted questions.
    Returns exhausted=true when every question in the subtopic has been tried.
    """
    try:
        session = _tracker().start_practice(subject_id, subtopic_id)
    except (ReferenceNotFound, NotLoggedIn) as e:
        return {"started": False, "error": e.args[0]}
    if session is None:
        return {"started": False, "exhausted": True}
    _sessions[session.id] = session
    return {
        "started": True,
        "session_id": session.id,
        "question_count": len(session.questions),
        "question": _question_view(session),
    }


@mcp.tool()
def submit_answer(
    session_id: str,
    answer: Union[int, str],
    time_taken_ms: Optional[float] = None,
) -> dict:
    """
    Answer the current question.  Multiple-choice answers are the option
    index; written answers are free text.  The attempt is recorded at once.
    """
    session = _sessions.get(session_id)
    if session is None:
        return {"error": f"Unknown session '{session_id}'."}
    try:
        answer = _coerce_answer(session, answer)
        result = _tracker().submit_answer(session, answer, time_taken_ms)
    except ValueError as e:
        return {"error": str(e)}
    return {
        "is_correct": result.is_correct,
        "correct_answer": result.correct_answer,
        "explanation": result.explanation,
        "finished": session.finished,
        "next_question": _question_view(session),
    }


@mcp.tool()
def finish_practice(session_id: str) -> dict:
    """Score the completed session and add it to the test history."""
    session = _sessions.get(session_id)
    if session is None:
        return {"error": f"Unknown session '{session_id}'."}
    try:
        outcome = _tracker().finish_practice(session)
    except ValueError as e:
        return {"error": str(e)}
    del _sessions[session_id]
    logged = outcome["session"]
    return {
        "test_id": logged.id,
        "history_saved": outcome["history_saved"],
        "profile_saved": outcome["profile_saved"],
        "score_percent": logged.score_percent,
        "correct": logged.correct_count,
        "questions": logged.questions_count,
        "duration": format_duration(logged.total_time_ms),
    }


@mcp.tool()
def get_progress() -> dict:
    """Return the raw progress ledger."""
    return _tracker().ledger.load().model_dump()


@mcp.tool()
def get_study_plan() -> dict:
    """Re-derive the study plan from the full ledger and return it."""
    return _tracker().study_plan().model_dump()


@mcp.tool()
def get_test_history(
    search: str = "",
    subject: str = "all",
    sort_by: str = "date",
    page: int = 1,
) -> dict:
    """Browse past tests with search, subject filter, sorting and paging."""
    tests = filter_history(_tracker().history.tests(), search, subject, sort_by)
    result = paginate(tests, page)
    result["items"] = [
        {**t.model_dump(exclude={"results"}), "duration": format_duration(t.total_time_ms)}
        for t in result["items"]
    ]
    return result


@mcp.tool()
def get_analytics() -> dict:
    """Overall stats, subject breakdown, time analytics, insights and the study plan."""
    tracker = _tracker()
    progress = tracker.ledger.load()
    tests = tracker.history.tests()
    return {
        "overall": overall_stats(progress),
        "subjects": subject_breakdown(progress, tracker.bank),
        "time": time_analytics(progress, tests, tracker.bank),
        "difficulty": difficulty_performance(tests, tracker.bank),
        "insights": performance_insights(progress, tests, tracker.bank),
        "study_plan": tracker.study_plan().model_dump(),
    }


@mcp.tool()
def export_progress_report() -> dict:
    """Build the downloadable progress report."""
    tracker = _tracker()
    profile = tracker.current_profile()
    return {
        "filename": report_filename(profile),
        "report": build_progress_report(
            profile, tracker.ledger.load(), tracker.history.tests(), tracker.bank
        ),
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    mcp.run()
