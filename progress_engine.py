"""
Progress engine — pure logic, no I/O.
Attempt bookkeeping, answer scoring, question selection and study-plan derivation.
"""

import math
import random
from typing import Optional, Union

from tracker_model import (
    AreaStat,
    AttemptRecord,
    ProgressRecord,
    Question,
    QuestionResult,
    Recommendation,
    SessionSummary,
    StudyPlan,
    SubtopicStat,
    now_iso,
)

SESSION_SIZE = 10

# Classification gates: (accuracy threshold, minimum attempts)
WEAK_ACCURACY = 0.60
WEAK_MIN_ATTEMPTS = 3
STRENGTH_ACCURACY = 0.80
STRENGTH_MIN_ATTEMPTS = 5

# Written answers longer than this (after stripping) count as correct
WRITTEN_MIN_LENGTH = 10


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (12.5 -> 13, not 12)."""
    return int(math.floor(value + 0.5))


def score_percent(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * correct / total)


# ---------------------------------------------------------------------------
# Ledger bookkeeping
# ---------------------------------------------------------------------------

def ensure_subtopic(progress: ProgressRecord, subject_id: str, subtopic_id: str) -> SubtopicStat:
    subject = progress.subjects.setdefault(subject_id, {})
    if subtopic_id not in subject:
        subject[subtopic_id] = SubtopicStat()
    return subject[subtopic_id]


def apply_attempt(
    progress: ProgressRecord,
    subject_id: str,
    subtopic_id: str,
    question_id: str,
    is_correct: bool,
    time_taken_ms: float,
) -> SubtopicStat:
    """
    Append one attempt to the ledger in place and refresh the subtopic's
    counters.  The average time is recomputed over the whole history.
    """
    if time_taken_ms < 0:
        raise ValueError("time_taken_ms must be >= 0")

    stat = ensure_subtopic(progress, subject_id, subtopic_id)
    now = now_iso()

    stat.history.append(
        AttemptRecord(
            question_id=question_id,
            result="correct" if is_correct else "incorrect",
            timestamp=now,
            time_taken_ms=time_taken_ms,
        )
    )
    stat.attempted += 1
    if is_correct:
        stat.correct += 1
    stat.average_time_ms = sum(h.time_taken_ms for h in stat.history) / len(stat.history)
    stat.last_attempt = now
    progress.last_activity = now
    return stat


def accuracy(stat: SubtopicStat) -> float:
    return stat.correct / stat.attempted if stat.attempted > 0 else 0.0


def attempted_question_ids(
    progress: ProgressRecord, subject_id: str, subtopic_id: Optional[str] = None
) -> set[str]:
    """Distinct question ids answered in one subtopic, or in a whole subject."""
    subject = progress.subjects.get(subject_id, {})
    if subtopic_id is not None:
        stats = [subject[subtopic_id]] if subtopic_id in subject else []
    else:
        stats = list(subject.values())
    return {h.question_id for stat in stats for h in stat.history}


# ---------------------------------------------------------------------------
# Question selection and scoring
# ---------------------------------------------------------------------------

def select_questions(
    questions: list[Question],
    attempted_ids: set[str],
    limit: int = SESSION_SIZE,
    rng: Optional[random.Random] = None,
) -> list[Question]:
    """
    Pick up to `limit` unattempted questions in uniformly random order.
    An empty list means the pool is exhausted.
    """
    pool = [q for q in questions if q.id not in attempted_ids]
    if not pool:
        return []
    (rng or random).shuffle(pool)
    return pool[: min(limit, len(pool))]


def score_answer(question: Question, answer: Union[int, str, None]) -> bool:
    """
    Multiple choice: the selected index must equal the correct index.
    Written: placeholder heuristic only, any answer longer than
    WRITTEN_MIN_LENGTH characters passes.  There is no real grader.
    """
    if question.type == "multiple-choice":
        if isinstance(answer, bool) or not isinstance(answer, int):
            return False
        return answer == question.correct_answer
    if not isinstance(answer, str):
        return False
    return len(answer.strip()) > WRITTEN_MIN_LENGTH


def build_question_result(
    question: Question, answer: Union[int, str, None], is_correct: bool, time_taken_ms: float
) -> QuestionResult:
    mcq = question.type == "multiple-choice"
    return QuestionResult(
        question_id=question.id,
        question=question.question,
        type=question.type,
        user_answer=answer,
        correct_answer=question.correct_answer if mcq else question.answer_guide,
        is_correct=is_correct,
        time_taken_ms=time_taken_ms,
        explanation=question.explanation or question.answer_guide or None,
    )


def summarize_session(
    subject_id: str, subtopic_id: str, results: list[QuestionResult], total_time_ms: float
) -> SessionSummary:
    correct = sum(1 for r in results if r.is_correct)
    return SessionSummary(
        subject=subject_id,
        subtopic=subtopic_id,
        questions_count=len(results),
        correct_count=correct,
        score_percent=score_percent(correct, len(results)),
        total_time_ms=total_time_ms,
        results=results,
    )


# ---------------------------------------------------------------------------
# Study plan
# ---------------------------------------------------------------------------

def classify(stat: SubtopicStat) -> Optional[str]:
    """
    'weak', 'strength' or None.  The minimum sample sizes differ on purpose
    so a couple of lucky or unlucky answers do not classify a subtopic.
    """
    if stat.attempted <= 0:
        return None
    acc = accuracy(stat)
    if acc < WEAK_ACCURACY and stat.attempted >= WEAK_MIN_ATTEMPTS:
        return "weak"
    if acc >= STRENGTH_ACCURACY and stat.attempted >= STRENGTH_MIN_ATTEMPTS:
        return "strength"
    return None


def derive_study_plan(progress: ProgressRecord) -> StudyPlan:
    """
    Rebuild the whole study plan from a ledger snapshot.  Areas keep the
    ledger's subject/subtopic insertion order; no ranking is applied.
    """
    weak_areas: list[AreaStat] = []
    strengths: list[AreaStat] = []

    for subject_id, subtopics in progress.subjects.items():
        for subtopic_id, stat in subtopics.items():
            label = classify(stat)
            if label is None:
                continue
            area = AreaStat(
                subject_id=subject_id,
                subtopic_id=subtopic_id,
                accuracy=accuracy(stat),
                attempted=stat.attempted,
            )
            (weak_areas if label == "weak" else strengths).append(area)

    recommendations = [
        Recommendation(
            type="improvement",
            subject_id=area.subject_id,
            subtopic_id=area.subtopic_id,
            message=(
                f"Focus on {area.subtopic_id} - current accuracy: "
                f"{round_half_up(area.accuracy * 100)}%"
            ),
            priority="high",
        )
        for area in weak_areas
    ]

    return StudyPlan(
        student_id=progress.student_id,
        weak_areas=weak_areas,
        strengths=strengths,
        recommendations=recommendations,
        last_updated=now_iso(),
    )
