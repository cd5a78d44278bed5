"""
In-memory exam session state machine.

One ExamSession holds a candidate's live progress through the ordered
sections of one exam attempt. Every transition is synchronous and runs under
the session lock, so two transitions never interleave. Illegal transitions
are rejected silently: the method returns False and nothing changes.

Phases:
    IN_SECTION          answering questions in ``current_section``
    SECTION_TRANSITION  between sections, waiting for the candidate to continue
    SUBMITTING          every section finished, waiting for trusted scoring
    SUBMITTED           terminal
"""

import functools
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from app.core.clock import elapsed_seconds, remaining_seconds
from app.core.constants import QuestionTypeEnum, SessionPhaseEnum, SubmissionTriggerEnum
from app.schemas.exam import Section
from app.schemas.exam_attempt import AttemptProgress
from app.schemas.question import CandidateQuestion
from app.schemas.session import SessionView

logger = logging.getLogger(__name__)


def _locked(method: Callable) -> Callable:
    @functools.wraps(method)
    def wrapper(self: "ExamSession", *args, **kwargs):
        with self._lock:
            self.last_activity = self.clock.now()
            return method(self, *args, **kwargs)
    return wrapper


class ExamSession:

    def __init__(
        self,
        *,
        attempt_id: int,
        exam_id: int,
        user_id: str,
        sections: Sequence[Section],
        questions: Sequence[CandidateQuestion],
        progress: AttemptProgress,
        started_at: datetime,
        clock,
        duration_seconds: int,
        max_audio_plays: int = 2,
        listening_section: int = 3,
    ):
        self.attempt_id = attempt_id
        self.exam_id = exam_id
        self.user_id = user_id
        self.started_at = started_at
        self.clock = clock
        self.duration_seconds = duration_seconds
        self.max_audio_plays = max_audio_plays
        self.listening_section = listening_section

        self._lock = threading.RLock()
        self._sections = sorted(sections, key=lambda s: s.number)
        self._section_numbers = [s.number for s in self._sections]
        self._questions: Dict[int, CandidateQuestion] = {q.id: q for q in questions}
        self._by_section: Dict[int, List[CandidateQuestion]] = {n: [] for n in self._section_numbers}
        for question in sorted(questions, key=lambda q: (q.section_number, q.question_order, q.id)):
            self._by_section.setdefault(question.section_number, []).append(question)

        self._progress = progress.model_copy(deep=True)
        self.phase = SessionPhaseEnum.IN_SECTION
        self.current_index = 0
        self.pending_confirmation = False
        self.time_remaining = duration_seconds
        self.submission_trigger: Optional[SubmissionTriggerEnum] = None
        self.submitted_at: Optional[datetime] = None
        self.disposed = False
        self.last_activity = clock.now()

        self._dirty = False
        self._expired = False
        self._submission_in_flight = False

        self._normalise_position()
        self.time_remaining = remaining_seconds(self.started_at, self.clock.now(), self.duration_seconds)

    # -- read side -----------------------------------------------------------

    @property
    def current_section(self) -> int:
        return self._progress.current_section

    @property
    def last_section(self) -> int:
        return self._section_numbers[-1]

    @property
    def is_listening_section(self) -> bool:
        return self.current_section == self.listening_section

    @property
    def section_questions(self) -> List[CandidateQuestion]:
        return self._by_section.get(self.current_section, [])

    @property
    def current_question(self) -> Optional[CandidateQuestion]:
        questions = self.section_questions
        if self.phase != SessionPhaseEnum.IN_SECTION or not questions:
            return None
        return questions[self.current_index]

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def needs_submission(self) -> bool:
        return self.phase == SessionPhaseEnum.SUBMITTING

    @property
    def is_submitted(self) -> bool:
        return self.phase == SessionPhaseEnum.SUBMITTED

    def snapshot(self) -> AttemptProgress:
        with self._lock:
            return self._progress.model_copy(deep=True)

    def view(self, applied: bool = True) -> SessionView:
        with self._lock:
            question = self.current_question
            section = next(s for s in self._sections if s.number == self.current_section)
            in_section = self.phase == SessionPhaseEnum.IN_SECTION
            return SessionView(
                attempt_id=self.attempt_id,
                exam_id=self.exam_id,
                phase=self.phase,
                current_section=self.current_section,
                section_title=section.title,
                last_section=self.last_section,
                current_index=self.current_index,
                current_question=question,
                section_question_ids=[q.id for q in self.section_questions],
                answers=dict(self._progress.answers),
                flagged_questions=list(self._progress.flagged_questions),
                audio_play_count=dict(self._progress.audio_play_count),
                section_finished=dict(self._progress.section_finished),
                time_remaining=self.time_remaining,
                started_at=self.started_at,
                submitted_at=self.submitted_at,
                pending_confirmation=self.pending_confirmation,
                is_listening_section=self.is_listening_section,
                can_go_back=in_section and not self.is_listening_section and self.current_index > 0,
                can_go_next=in_section and self.current_index < len(self.section_questions) - 1,
                can_jump=in_section and not self.is_listening_section,
                applied=applied,
            )

    # -- candidate actions ---------------------------------------------------

    @_locked
    def select_answer(self, question_id: int, option: str) -> bool:
        if not self._accepting_input():
            return self._reject("select_answer", question_id)
        question = self._question_in_section(question_id)
        if question is None or option not in question.options_json:
            return self._reject("select_answer", question_id)
        if self._progress.answers.get(question_id) == option:
            return True
        self._progress.answers[question_id] = option
        self._touch()
        return True

    @_locked
    def toggle_flag(self, question_id: int) -> bool:
        if not self._accepting_input() or self.is_listening_section:
            return self._reject("toggle_flag", question_id)
        if self._question_in_section(question_id) is None:
            return self._reject("toggle_flag", question_id)
        flags = set(self._progress.flagged_questions)
        flags.symmetric_difference_update({question_id})
        self._progress.flagged_questions = sorted(flags)
        self._touch()
        return True

    @_locked
    def play_audio(self, question_id: int) -> bool:
        if not self._accepting_input():
            return self._reject("play_audio", question_id)
        question = self._question_in_section(question_id)
        if question is None or question.type != QuestionTypeEnum.AUDIO.value:
            return self._reject("play_audio", question_id)
        plays = self._progress.audio_play_count.get(question_id, 0)
        if plays >= self.max_audio_plays:
            return self._reject("play_audio", question_id)
        self._progress.audio_play_count[question_id] = plays + 1
        self._touch()
        return True

    @_locked
    def next(self) -> bool:
        if not self._accepting_input() or self.current_index >= len(self.section_questions) - 1:
            return self._reject("next")
        self.current_index += 1
        return True

    @_locked
    def previous(self) -> bool:
        if not self._accepting_input() or self.is_listening_section or self.current_index == 0:
            return self._reject("previous")
        self.current_index -= 1
        return True

    @_locked
    def jump_to(self, index: int) -> bool:
        if not self._accepting_input() or self.is_listening_section:
            return self._reject("jump_to", index)
        if not 0 <= index < len(self.section_questions):
            return self._reject("jump_to", index)
        self.current_index = index
        return True

    @_locked
    def request_finish_section(self) -> bool:
        if not self._accepting_input():
            return self._reject("request_finish_section")
        self.pending_confirmation = True
        return True

    @_locked
    def cancel_finish_section(self) -> bool:
        if not self.pending_confirmation:
            return self._reject("cancel_finish_section")
        self.pending_confirmation = False
        return True

    @_locked
    def confirm_finish_section(self) -> bool:
        if not self.pending_confirmation or not self._accepting_input():
            return self._reject("confirm_finish_section")
        self.pending_confirmation = False
        self._finish_current_section(SubmissionTriggerEnum.CANDIDATE)
        return True

    @_locked
    def continue_to_section(self) -> bool:
        self._refresh_clock()
        if self.phase != SessionPhaseEnum.SECTION_TRANSITION:
            return self._reject("continue_to_section")
        self.phase = SessionPhaseEnum.IN_SECTION
        return True

    # -- timer ---------------------------------------------------------------

    @_locked
    def tick(self) -> bool:
        """Recomputes time_remaining. Returns True only on the tick that expired the exam."""
        return self._refresh_clock()

    # -- submission latch ----------------------------------------------------

    @_locked
    def claim_submission(self) -> bool:
        """Single-fire: True for exactly one caller while a submission is needed."""
        if self.phase != SessionPhaseEnum.SUBMITTING or self._submission_in_flight:
            return False
        self._submission_in_flight = True
        return True

    @_locked
    def release_submission(self) -> None:
        self._submission_in_flight = False

    @_locked
    def complete_submission(self, submitted_at: datetime, trigger: Optional[str] = None) -> None:
        self.phase = SessionPhaseEnum.SUBMITTED
        self.submitted_at = submitted_at
        if trigger and self.submission_trigger is None:
            self.submission_trigger = SubmissionTriggerEnum(trigger)
        self.pending_confirmation = False
        self._submission_in_flight = False
        self._dirty = False

    # -- persistence bookkeeping ---------------------------------------------

    @_locked
    def mark_dirty(self) -> None:
        self._dirty = True

    @_locked
    def mark_flushed(self, revision: int) -> None:
        if revision == self._progress.revision:
            self._dirty = False

    def dispose(self) -> None:
        with self._lock:
            self.disposed = True

    # -- internals -----------------------------------------------------------

    def _accepting_input(self) -> bool:
        self._refresh_clock()
        return not self.disposed and self.phase == SessionPhaseEnum.IN_SECTION

    def _question_in_section(self, question_id: int) -> Optional[CandidateQuestion]:
        question = self._questions.get(question_id)
        if question is None or question.section_number != self.current_section:
            return None
        return question

    def _reject(self, action: str, target=None) -> bool:
        logger.debug(
            f"[attempt {self.attempt_id}] rejected {action}"
            f"{'' if target is None else f' ({target})'} in {self.phase.value} section {self.current_section}"
        )
        return False

    def _touch(self) -> None:
        self._progress.revision += 1
        self._dirty = True

    def _refresh_clock(self) -> bool:
        self.time_remaining = remaining_seconds(self.started_at, self.clock.now(), self.duration_seconds)
        if self.time_remaining > 0 or self._expired or self.disposed:
            return False
        self._expired = True
        if self.phase in (SessionPhaseEnum.SUBMITTING, SessionPhaseEnum.SUBMITTED):
            return False
        logger.info(f"[attempt {self.attempt_id}] exam timer expired in section {self.current_section}")
        self.pending_confirmation = False
        while self.phase != SessionPhaseEnum.SUBMITTING:
            self._finish_current_section(SubmissionTriggerEnum.TIMER_EXPIRED)
        return True

    def _finish_current_section(self, trigger: SubmissionTriggerEnum) -> None:
        section = self.current_section
        self._progress.section_finished[section] = True
        self._progress.section_times[section] = self._time_spent_in(section)
        self._touch()

        if section >= self.last_section:
            self.phase = SessionPhaseEnum.SUBMITTING
            self.submission_trigger = trigger
            logger.info(f"[attempt {self.attempt_id}] all sections finished ({trigger.value})")
            return

        self._progress.current_section = self._section_numbers[self._section_numbers.index(section) + 1]
        self.current_index = 0
        self.phase = SessionPhaseEnum.SECTION_TRANSITION

    def _time_spent_in(self, section: int) -> int:
        elapsed = min(elapsed_seconds(self.started_at, self.clock.now()), self.duration_seconds)
        before = sum(
            seconds for number, seconds in self._progress.section_times.items() if number < section
        )
        return max(0, elapsed - before)

    def _normalise_position(self) -> None:
        progress = self._progress
        if progress.current_section not in self._section_numbers:
            progress.current_section = min(
                [n for n in self._section_numbers if n >= progress.current_section] or [self.last_section]
            )
        while progress.section_finished.get(progress.current_section) and progress.current_section < self.last_section:
            progress.current_section = self._section_numbers[self._section_numbers.index(progress.current_section) + 1]
        if progress.section_finished.get(self.last_section):
            self.phase = SessionPhaseEnum.SUBMITTING
            self.submission_trigger = SubmissionTriggerEnum.CANDIDATE

        # The in-section index is not persisted; resume at the first unanswered question.
        self.current_index = next(
            (i for i, q in enumerate(self.section_questions) if q.id not in progress.answers),
            0,
        )
