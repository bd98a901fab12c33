"""
Stateful tracker components over an injected key-value store.

ProfileStore, ProgressLedger, TestHistoryLog and StudyPlanEngine each own
one record.  StudyTracker wires them to the question bank and runs practice
sessions.  Writes to different records are independent: a failed write is
logged and reported, never raised, and may leave records out of step.
"""

import logging
import random
import threading
import time
import uuid
from typing import Optional, Union

from kv_store import (
    STORAGE_KEYS,
    KeyValueStore,
    delete_record,
    read_record,
    write_record,
)
from progress_engine import (
    apply_attempt,
    attempted_question_ids,
    build_question_result,
    derive_study_plan,
    score_answer,
    select_questions,
    summarize_session,
)
from question_bank import QuestionBank
from tracker_model import (
    Profile,
    ProgressRecord,
    Question,
    QuestionResult,
    SessionSummary,
    StudyPlan,
    TestHistory,
    TestSession,
    now_iso,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
AVATAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={student_id}"

# Last issued test id, shared by every TestHistoryLog in the process.
_last_id_ms = 0
_id_lock = threading.Lock()


class NotLoggedIn(RuntimeError):
    """No profile record exists in the store."""


# ---------------------------------------------------------------------------
# Record owners
# ---------------------------------------------------------------------------

class ProfileStore:
    def __init__(self, store: KeyValueStore):
        self.store = store
        self.key = STORAGE_KEYS["profile"]

    def load(self) -> Optional[Profile]:
        return read_record(self.store, self.key, Profile)

    def save(self, profile: Profile) -> bool:
        return write_record(self.store, self.key, profile)

    def rename(self, name: str) -> Optional[Profile]:
        name = name.strip()
        if not name:
            raise ValueError("Name must not be blank")
        profile = self.load()
        if profile is None:
            return None
        profile.name = name
        self.save(profile)
        return profile

    def count_answer(self, is_correct: bool) -> bool:
        profile = self.load()
        if profile is None:
            logger.warning("No profile to update; answer counted in the ledger only")
            return False
        profile.total_questions += 1
        if is_correct:
            profile.correct_answers += 1
        return self.save(profile)

    def count_test(self) -> bool:
        profile = self.load()
        if profile is None:
            logger.warning("No profile to update; test logged without a profile count")
            return False
        profile.total_tests += 1
        return self.save(profile)


class ProgressLedger:
    def __init__(self, store: KeyValueStore, profiles: ProfileStore):
        self.store = store
        self.profiles = profiles
        self.key = STORAGE_KEYS["progress"]

    def load(self) -> ProgressRecord:
        return read_record(self.store, self.key, ProgressRecord) or ProgressRecord()

    def save(self, progress: ProgressRecord) -> bool:
        return write_record(self.store, self.key, progress)

    def record_attempt(
        self,
        subject_id: str,
        subtopic_id: str,
        question_id: str,
        is_correct: bool,
        time_taken_ms: float,
    ) -> dict:
        """
        Append an attempt and bump the profile counters.
        The ledger and profile are two separate writes, ledger first.
        Ids are not checked against the question bank here.
        An unreadable ledger loads as empty, so if the read fails and the
        write succeeds the stored ledger is replaced by this one attempt.
        """
        progress = self.load()
        stat = apply_attempt(progress, subject_id, subtopic_id, question_id, is_correct, time_taken_ms)
        ledger_saved = self.save(progress)
        profile_saved = self.profiles.count_answer(is_correct)
        return {
            "stat": stat,
            "ledger_saved": ledger_saved,
            "profile_saved": profile_saved,
        }

    def attempted_ids(self, subject_id: str, subtopic_id: Optional[str] = None) -> set[str]:
        return attempted_question_ids(self.load(), subject_id, subtopic_id)


class TestHistoryLog:
    __test__ = False

    def __init__(self, store: KeyValueStore, profiles: ProfileStore, limit: int = HISTORY_LIMIT):
        self.store = store
        self.profiles = profiles
        self.limit = limit
        self.key = STORAGE_KEYS["test_history"]

    def load(self) -> TestHistory:
        return read_record(self.store, self.key, TestHistory) or TestHistory()

    def tests(self) -> list[TestSession]:
        return self.load().tests

    @staticmethod
    def _next_id() -> str:
        global _last_id_ms
        with _id_lock:
            _last_id_ms = max(int(time.time() * 1000), _last_id_ms + 1)
            return f"test_{_last_id_ms}"

    def append_session(self, summary: SessionSummary) -> dict:
        """
        Stamp the summary, put it at the head of the log and trim the tail,
        then bump the profile's test count.  Both saves are reported.
        """
        history = self.load()
        session = TestSession(**summary.model_dump(), id=self._next_id(), date=now_iso())
        history.tests.insert(0, session)
        if len(history.tests) > self.limit:
            history.tests = history.tests[: self.limit]
        history_saved = write_record(self.store, self.key, history)
        profile_saved = self.profiles.count_test()
        return {
            "session": session,
            "history_saved": history_saved,
            "profile_saved": profile_saved,
        }


class StudyPlanEngine:
    """derive() is pure; refresh() derives and writes the result through."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.key = STORAGE_KEYS["study_plan"]

    @staticmethod
    def derive(progress: ProgressRecord) -> StudyPlan:
        return derive_study_plan(progress)

    def load(self) -> Optional[StudyPlan]:
        return read_record(self.store, self.key, StudyPlan)

    def save(self, plan: StudyPlan) -> bool:
        return write_record(self.store, self.key, plan)

    def refresh(self, progress: ProgressRecord) -> StudyPlan:
        plan = self.derive(progress)
        cached = self.load()
        if cached is not None:
            plan.next_goals = cached.next_goals
        self.save(plan)
        return plan


# ---------------------------------------------------------------------------
# Practice sessions
# ---------------------------------------------------------------------------

class PracticeSession:
    """An in-flight test.  Nothing here is persisted until answers come in."""

    def __init__(self, subject_id: str, subtopic_id: str, questions: list[Question]):
        self.id = uuid.uuid4().hex
        self.subject_id = subject_id
        self.subtopic_id = subtopic_id
        self.questions = questions
        self.index = 0
        self.results: list[QuestionResult] = []
        self.started_at = time.monotonic()
        self.question_started_at = self.started_at

    @property
    def current_question(self) -> Optional[Question]:
        if self.index < len(self.questions):
            return self.questions[self.index]
        return None

    @property
    def finished(self) -> bool:
        return self.index >= len(self.questions)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000


class StudyTracker:
    def __init__(self, store: KeyValueStore, bank: QuestionBank):
        self.store = store
        self.bank = bank
        self.profiles = ProfileStore(store)
        self.ledger = ProgressLedger(store, self.profiles)
        self.history = TestHistoryLog(store, self.profiles)
        self.plans = StudyPlanEngine(store)

    # -- identity ----------------------------------------------------------

    def login(self, student_id: str, name: str) -> Profile:
        """Start a fresh identity, discarding whatever the store held."""
        student_id, name = student_id.strip(), name.strip()
        if not student_id or not name:
            raise ValueError("Student ID and name are required")

        profile = Profile(
            student_id=student_id,
            name=name,
            avatar=AVATAR_URL.format(student_id=student_id),
        )
        self.profiles.save(profile)
        self.ledger.save(ProgressRecord(student_id=student_id, last_activity=now_iso()))
        write_record(self.store, self.history.key, TestHistory(student_id=student_id))
        self.plans.save(StudyPlan(student_id=student_id))
        logger.info(f"Logged in {student_id}")
        return profile

    def logout(self) -> bool:
        results = [delete_record(self.store, key) for key in STORAGE_KEYS.values()]
        logger.info("Logged out; tracker records cleared")
        return all(results)

    def current_profile(self) -> Optional[Profile]:
        return self.profiles.load()

    # -- practice ------------------------------------------------------------

    def start_practice(
        self, subject_id: str, subtopic_id: str, rng: Optional[random.Random] = None
    ) -> Optional[PracticeSession]:
        """
        Draw a session of unattempted questions.  Unknown ids raise
        ReferenceNotFound before the ledger is touched; an exhausted pool
        returns None.
        """
        if self.profiles.load() is None:
            raise NotLoggedIn("Log in before starting a practice session")
        subtopic = self.bank.get_subtopic(subject_id, subtopic_id)
        attempted = self.ledger.attempted_ids(subject_id, subtopic_id)
        questions = select_questions(subtopic.questions, attempted, rng=rng)
        if not questions:
            logger.info(f"No unattempted questions left in {subject_id}/{subtopic_id}")
            return None
        return PracticeSession(subject_id, subtopic_id, questions)

    def submit_answer(
        self,
        session: PracticeSession,
        answer: Union[int, str, None],
        time_taken_ms: Optional[float] = None,
    ) -> QuestionResult:
        """Score the current question and record it in the ledger right away."""
        question = session.current_question
        if question is None:
            raise ValueError("All questions in this session have been answered")

        if time_taken_ms is None:
            time_taken_ms = (time.monotonic() - session.question_started_at) * 1000

        is_correct = score_answer(question, answer)
        self.ledger.record_attempt(
            session.subject_id, session.subtopic_id, question.id, is_correct, time_taken_ms
        )
        result = build_question_result(question, answer, is_correct, time_taken_ms)
        session.results.append(result)
        session.index += 1
        session.question_started_at = time.monotonic()
        return result

    def finish_practice(
        self, session: PracticeSession, total_time_ms: Optional[float] = None
    ) -> dict:
        """
        Summarize a completed session into the test history.  Returns the
        append_session outcome: the logged session plus its save flags.
        """
        if not session.finished:
            raise ValueError(
                f"{len(session.questions) - session.index} question(s) still unanswered"
            )
        if total_time_ms is None:
            total_time_ms = session.elapsed_ms()
        summary = summarize_session(
            session.subject_id, session.subtopic_id, session.results, total_time_ms
        )
        outcome = self.history.append_session(summary)
        logged = outcome["session"]
        if not outcome["history_saved"]:
            logger.warning(f"Session {logged.id} was scored but not saved to the test history")
        logger.info(
            f"Session {logged.id} complete: {logged.correct_count}/{logged.questions_count} "
            f"in {session.subject_id}/{session.subtopic_id}"
        )
        return outcome

    # -- derived views -------------------------------------------------------

    def study_plan(self) -> StudyPlan:
        return self.plans.refresh(self.ledger.load())
