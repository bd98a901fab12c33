"""
Quiz Tracker Web API — FastAPI backend.

Read views of the tracker records plus login/logout and the progress
report download.  Practice sessions run through the MCP server.

    python3 tracker_app.py
    open http://localhost:8000/docs
"""

import json
import logging
import os
import sys
from datetime import date
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from analytics import (
    build_progress_report,
    difficulty_performance,
    filter_history,
    overall_stats,
    paginate,
    performance_insights,
    report_filename,
    subject_breakdown,
    subtopic_progress,
    time_analytics,
    unique_subjects,
)
from kv_store import FileStore
from question_bank import QUESTION_BANK_PATH, QuestionBank, ReferenceNotFound
from tracker import StudyTracker

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

HOST = os.getenv("QUIZTRACK_HOST", "127.0.0.1")
PORT = int(os.getenv("QUIZTRACK_PORT", "8000"))

logger = logging.getLogger("tracker_app")

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(title="Quiz Tracker")


@lru_cache(maxsize=1)
def _bank() -> QuestionBank:
    return QuestionBank.load()


def get_tracker() -> StudyTracker:
    return StudyTracker(FileStore(), _bank())


def require_profile(tracker: StudyTracker):
    profile = tracker.current_profile()
    if profile is None:
        raise HTTPException(status_code=401, detail="Not logged in")
    return profile


class LoginRequest(BaseModel):
    student_id: str
    name: str


class ProfileUpdate(BaseModel):
    name: str


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

@app.post("/api/login")
async def login(body: LoginRequest, tracker: StudyTracker = Depends(get_tracker)):
    try:
        profile = tracker.login(body.student_id, body.name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return profile.model_dump()


@app.post("/api/logout")
async def logout(tracker: StudyTracker = Depends(get_tracker)):
    return {"logged_out": True, "cleared": tracker.logout()}


@app.get("/api/profile")
async def get_profile(tracker: StudyTracker = Depends(get_tracker)):
    profile = require_profile(tracker)
    return {
        "profile": profile.model_dump(),
        "stats": overall_stats(tracker.ledger.load()),
    }


@app.patch("/api/profile")
async def update_profile(body: ProfileUpdate, tracker: StudyTracker = Depends(get_tracker)):
    require_profile(tracker)
    try:
        profile = tracker.profiles.rename(body.name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return profile.model_dump()


# ---------------------------------------------------------------------------
# Catalog and progress
# ---------------------------------------------------------------------------

@app.get("/api/subjects")
async def list_subjects(tracker: StudyTracker = Depends(get_tracker)):
    return [
        {
            "subject_id": s.subject_id,
            "title": s.title,
            "icon": s.icon,
            "subtopic_count": len(s.subtopics),
            "question_count": tracker.bank.question_count(s.subject_id),
        }
        for s in tracker.bank.subjects
    ]


@app.get("/api/subjects/{subject_id}")
async def get_subject(subject_id: str, tracker: StudyTracker = Depends(get_tracker)):
    try:
        rows = subtopic_progress(tracker.ledger.load(), tracker.bank, subject_id)
    except ReferenceNotFound as e:
        return JSONResponse({"error": e.args[0]}, status_code=404)
    return {"subject_id": subject_id, "subtopics": rows}


@app.get("/api/progress")
async def get_progress(tracker: StudyTracker = Depends(get_tracker)):
    return tracker.ledger.load().model_dump()


@app.get("/api/study-plan")
async def get_study_plan(tracker: StudyTracker = Depends(get_tracker)):
    return tracker.study_plan().model_dump()


@app.get("/api/history")
async def get_history(
    search: str = "",
    subject: str = "all",
    sort_by: str = "date",
    page: int = 1,
    tracker: StudyTracker = Depends(get_tracker),
):
    tests = tracker.history.tests()
    result = paginate(filter_history(tests, search, subject, sort_by), page)
    result["items"] = [t.model_dump() for t in result["items"]]
    result["subjects"] = unique_subjects(tests)
    return result


@app.get("/api/analytics")
async def get_analytics(tracker: StudyTracker = Depends(get_tracker)):
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


@app.get("/api/report")
async def download_report(tracker: StudyTracker = Depends(get_tracker)):
    profile = tracker.current_profile()
    report = build_progress_report(
        profile, tracker.ledger.load(), tracker.history.tests(), tracker.bank
    )
    filename = report_filename(profile, date.today())
    return Response(
        content=json.dumps(report, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    if not QUESTION_BANK_PATH.exists():
        logger.error(
            f"Question bank not found at {QUESTION_BANK_PATH}. "
            f"Set QUIZTRACK_QUESTION_BANK to a catalog JSON file."
        )
        sys.exit(1)
    logger.info(f"Question bank: {QUESTION_BANK_PATH}")
    uvicorn.run(app, host=HOST, port=PORT)
