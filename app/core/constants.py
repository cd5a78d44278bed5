from enum import Enum


SCORE_SCALE = 250
SECTION_SCORE_SCALE = 100


class QuestionTypeEnum(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"

class ExamAttemptStatusEnum(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"

class SessionPhaseEnum(str, Enum):
    IN_SECTION = "in_section"
    SECTION_TRANSITION = "section_transition"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"

class SubmissionTriggerEnum(str, Enum):
    CANDIDATE = "candidate"
    TIMER_EXPIRED = "timer_expired"

class NavigationActionEnum(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    JUMP = "jump"

class FlushReasonEnum(str, Enum):
    INTERVAL = "interval"
    HIDDEN = "hidden"
    UNLOAD = "unload"
    SECTION_FINISHED = "section_finished"
    EVICTION = "eviction"
