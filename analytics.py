"""
Analytics over the ledger and test history — pure logic, no I/O.
Overall stats, per-subject breakdowns, weekly activity, insights and the
exportable progress report.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from progress_engine import attempted_question_ids, round_half_up
from question_bank import QuestionBank, ReferenceNotFound
from tracker_model import Profile, ProgressRecord, TestSession, now_iso

HISTORY_PAGE_SIZE = 10
RECENT_TESTS = 5
DIFFICULTIES = ["easy", "medium", "hard"]


def _percent(part: float, whole: float) -> int:
    return round_half_up(part / whole * 100) if whole > 0 else 0


def _ms_to_minutes(ms: float) -> int:
    return round_half_up(ms / 1000 / 60)


def overall_stats(progress: ProgressRecord) -> dict:
    total_questions = 0
    correct_answers = 0
    total_time = 0.0
    subjects_started = 0

    for subtopics in progress.subjects.values():
        started = False
        for stat in subtopics.values():
            total_questions += stat.attempted
            correct_answers += stat.correct
            total_time += sum(h.time_taken_ms for h in stat.history)
            if stat.attempted > 0:
                started = True
        if started:
            subjects_started += 1

    return {
        "total_questions": total_questions,
        "correct_answers": correct_answers,
        "accuracy": _percent(correct_answers, total_questions),
        "total_time_minutes": _ms_to_minutes(total_time),
        "subjects_started": subjects_started,
    }


def subject_breakdown(progress: ProgressRecord, bank: QuestionBank) -> list[dict]:
    """Catalog subjects the student has practised, in catalog order."""
    rows = []
    for subject in bank.subjects:
        stats = progress.subjects.get(subject.subject_id, {})
        attempted = sum(s.attempted for s in stats.values())
        if attempted == 0:
            continue
        correct = sum(s.correct for s in stats.values())
        started = sum(1 for s in stats.values() if s.attempted > 0)
        rows.append({
            "subject_id": subject.subject_id,
            "title": subject.title,
            "attempted": attempted,
            "correct": correct,
            "accuracy": _percent(correct, attempted),
            "progress": _percent(started, len(subject.subtopics)),
            "subtopic_count": len(subject.subtopics),
        })
    return rows


def subtopic_progress(progress: ProgressRecord, bank: QuestionBank, subject_id: str) -> list[dict]:
    """Per-subtopic accuracy and remaining unattempted questions."""
    subject = bank.get_subject(subject_id)
    stats = progress.subjects.get(subject_id, {})
    rows = []
    for subtopic in subject.subtopics:
        stat = stats.get(subtopic.subtopic_id)
        attempted = stat.attempted if stat else 0
        correct = stat.correct if stat else 0
        seen = attempted_question_ids(progress, subject_id, subtopic.subtopic_id)
        total = len(subtopic.questions)
        rows.append({
            "subtopic_id": subtopic.subtopic_id,
            "title": subtopic.title,
            "difficulty": subtopic.difficulty,
            "attempted": attempted,
            "correct": correct,
            "accuracy": _percent(correct, attempted),
            "total_questions": total,
            "remaining": total - len(seen & {q.id for q in subtopic.questions}),
        })
    return rows


def _session_day(session: TestSession) -> Optional[date]:
    try:
        return datetime.fromisoformat(session.date).date()
    except ValueError:
        return None


def weekly_progress(tests: list[TestSession], today: Optional[date] = None) -> list[dict]:
    """Last seven days, oldest first: questions answered, tests taken, mean score."""
    today = today or date.today()
    days = {}
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        days[day] = {"date": day.isoformat(), "questions": 0, "accuracy": 0, "tests": 0}

    score_sums: dict[date, int] = {}
    for t in tests:
        day = _session_day(t)
        if day not in days:
            continue
        days[day]["questions"] += t.questions_count
        days[day]["tests"] += 1
        score_sums[day] = score_sums.get(day, 0) + t.score_percent

    for day, total in score_sums.items():
        days[day]["accuracy"] = round_half_up(total / days[day]["tests"])

    return list(days.values())


def time_analytics(
    progress: ProgressRecord,
    tests: list[TestSession],
    bank: QuestionBank,
    today: Optional[date] = None,
) -> dict:
    total_study_time = sum(t.total_time_ms for t in tests)
    average_session = round_half_up(total_study_time / len(tests) / 1000) if tests else 0

    distribution = []
    for subject_id, subtopics in progress.subjects.items():
        spent = sum(h.time_taken_ms for s in subtopics.values() for h in s.history)
        if spent <= 0:
            continue
        try:
            color = bank.get_subject(subject_id).color
        except ReferenceNotFound:
            color = "#8884d8"
        distribution.append({
            "subject_id": subject_id,
            "name": bank.subject_title(subject_id),
            "minutes": _ms_to_minutes(spent),
            "color": color,
        })

    return {
        "total_study_time_ms": total_study_time,
        "average_session_seconds": average_session,
        "weekly_progress": weekly_progress(tests, today),
        "subject_time_distribution": distribution,
    }


def performance_insights(
    progress: ProgressRecord, tests: list[TestSession], bank: QuestionBank
) -> list[dict]:
    insights = []

    recent = tests[:RECENT_TESTS]
    if len(recent) >= 3:
        avg_score = sum(t.score_percent for t in recent) / len(recent)
        if avg_score >= 80:
            insights.append({
                "type": "success",
                "title": "Excellent Performance Trend",
                "message": (
                    f"Your average score in recent tests is {round_half_up(avg_score)}%. "
                    "Keep up the great work!"
                ),
                "action": "Try harder difficulty levels",
            })
        elif avg_score < 60:
            insights.append({
                "type": "warning",
                "title": "Performance Needs Attention",
                "message": (
                    f"Your recent average is {round_half_up(avg_score)}%. "
                    "Consider reviewing fundamental concepts."
                ),
                "action": "Focus on weak areas",
            })

    counts = {
        subject_id: sum(s.attempted for s in subtopics.values())
        for subject_id, subtopics in progress.subjects.items()
    }
    if counts:
        most, least = max(counts.values()), min(counts.values())
        if most > least * 3:
            catalog = {s.subject_id: s.title for s in bank.subjects}
            neglected = [
                catalog[subject_id]
                for subject_id, count in counts.items()
                if count < most / 2 and catalog.get(subject_id)
            ]
            if neglected:
                insights.append({
                    "type": "info",
                    "title": "Subject Balance Recommendation",
                    "message": f"Consider practicing more in: {', '.join(neglected)}",
                    "action": "Balance your study schedule",
                })

    return insights


def difficulty_performance(tests: list[TestSession], bank: QuestionBank) -> dict[str, int]:
    """Mean session score per subtopic difficulty."""
    buckets: dict[str, list[int]] = {d: [] for d in DIFFICULTIES}
    for t in tests:
        try:
            difficulty = bank.get_subtopic(t.subject, t.subtopic).difficulty
        except ReferenceNotFound:
            continue
        if difficulty in buckets:
            buckets[difficulty].append(t.score_percent)
    return {
        d: round_half_up(sum(scores) / len(scores)) if scores else 0
        for d, scores in buckets.items()
    }


def report_recommendations(breakdown: list[dict]) -> list[str]:
    recommendations = [
        f"Focus more on {row['title']} - current accuracy: {row['accuracy']}%"
        for row in breakdown
        if row["accuracy"] < 70 and row["attempted"] >= 5
    ]
    recommendations += [
        f"Excellent work in {row['title']}! Consider advanced topics."
        for row in breakdown
        if row["accuracy"] >= 85 and row["attempted"] >= 10
    ]
    return recommendations


def build_progress_report(
    profile: Optional[Profile],
    progress: ProgressRecord,
    tests: list[TestSession],
    bank: QuestionBank,
) -> dict:
    """One-shot export of derived aggregates.  There is no import path."""
    breakdown = subject_breakdown(progress, bank)
    return {
        "student_info": {
            "name": profile.name if profile else None,
            "student_id": profile.student_id if profile else None,
            "join_date": profile.join_date if profile else None,
            "report_date": now_iso(),
        },
        "overall_stats": overall_stats(progress),
        "subject_breakdown": breakdown,
        "recent_performance": [t.model_dump() for t in tests[:RECENT_TESTS]],
        "recommendations": report_recommendations(breakdown),
    }


def report_filename(profile: Optional[Profile], today: Optional[date] = None) -> str:
    today = today or date.today()
    name = profile.name if profile else "student"
    return f"{name}_Progress_Report_{today.isoformat()}.json"


# ---------------------------------------------------------------------------
# History browsing
# ---------------------------------------------------------------------------

def unique_subjects(tests: list[TestSession]) -> list[str]:
    seen = []
    for t in tests:
        if t.subject != "mixed" and t.subject not in seen:
            seen.append(t.subject)
    return seen


def _date_key(session: TestSession) -> datetime:
    try:
        return datetime.fromisoformat(session.date)
    except ValueError:
        return datetime.min


def filter_history(
    tests: list[TestSession],
    search: str = "",
    subject: str = "all",
    sort_by: str = "date",
) -> list[TestSession]:
    result = list(tests)

    if search:
        needle = search.lower()
        result = [
            t for t in result
            if needle in t.subject.lower() or needle in t.subtopic.lower()
        ]

    if subject != "all":
        result = [t for t in result if t.subject == subject]

    if sort_by == "date":
        result.sort(key=_date_key, reverse=True)
    elif sort_by == "score":
        result.sort(key=lambda t: t.score_percent, reverse=True)
    elif sort_by == "questions":
        result.sort(key=lambda t: t.questions_count, reverse=True)

    return result


def paginate(items: list, page: int = 1, per_page: int = HISTORY_PAGE_SIZE) -> dict:
    total_pages = max(1, -(-len(items) // per_page))
    page = max(1, min(page, total_pages))
    start = (page - 1) * per_page
    return {
        "items": items[start:start + per_page],
        "page": page,
        "total_pages": total_pages,
        "total": len(items),
    }


def format_duration(ms: float) -> str:
    seconds = int(ms // 1000)
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes}m {remaining}s" if minutes > 0 else f"{remaining}s"
