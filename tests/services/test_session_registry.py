from app.core.clock import FrozenClock
from app.schemas.exam import Section
from app.schemas.exam_attempt import AttemptProgress
from app.schemas.question import CandidateQuestion
from app.services.exam_session import ExamSession
from app.services.session_registry import SessionRegistry


def _session(clock, user_id="candidate-1", attempt_id=1):
    return ExamSession(
        attempt_id=attempt_id,
        exam_id=1,
        user_id=user_id,
        sections=[Section(number=1, title="Only")],
        questions=[CandidateQuestion(
            id=1, exam_id=1, section_number=1, category="General",
            content_text="Q1", options_json=["A", "B"],
        )],
        progress=AttemptProgress(),
        started_at=clock.now(),
        clock=clock,
        duration_seconds=3600,
    )


def test_put_replaces_and_disposes_previous():
    clock = FrozenClock()
    registry = SessionRegistry()
    old, new = _session(clock), _session(clock)
    registry.put(old)
    assert registry.put(new) is old
    assert old.disposed
    assert registry.get(1, "candidate-1") is new
    assert len(registry) == 1


def test_remove_only_drops_the_registered_instance():
    clock = FrozenClock()
    registry = SessionRegistry()
    stale, live = _session(clock), _session(clock)
    registry.put(live)
    registry.remove(stale)
    assert registry.get(1, "candidate-1") is live
    registry.remove(live)
    assert registry.get(1, "candidate-1") is None


def test_idle_uses_last_activity():
    clock = FrozenClock()
    registry = SessionRegistry()
    quiet = _session(clock, user_id="quiet", attempt_id=1)
    busy = _session(clock, user_id="busy", attempt_id=2)
    registry.put(quiet)
    registry.put(busy)

    clock.advance(minutes=30)
    busy.tick()
    clock.advance(minutes=31)

    assert registry.idle(clock.now(), ttl_seconds=3600) == [quiet]
