from datetime import datetime, timedelta, timezone

import pytest

from backend.app.models.interview import Interview
from backend.app.models.user import User
from backend.app.services import room_queue
from backend.app.utils.error_handlers import ForbiddenError

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _waiting(id: int, score: int, minutes: int, status: str = "waiting") -> Interview:
    return Interview(
        id=id,
        student_id=id,
        company_id=1,
        status=status,
        opportunity_type="pfe",
        priority_score=score,
        joined_at=T0 + timedelta(minutes=minutes),
    )


def test_priority_score_by_student_status_and_opportunity():
    ensa = User(id=1, email="a@x.io", role="student", student_status="ensa")
    external = User(id=2, email="b@x.io", role="student", student_status="external")
    assert room_queue.calculate_priority_score(ensa, "pfe") == 200
    assert room_queue.calculate_priority_score(ensa, "pfa") == 200
    assert room_queue.calculate_priority_score(ensa, "employment") == 210
    assert room_queue.calculate_priority_score(external, "observation") == 320


def test_only_students_get_a_score():
    committee = User(id=3, email="c@x.io", role="committee")
    with pytest.raises(ForbiddenError):
        room_queue.calculate_priority_score(committee, "pfe")


def test_order_is_score_then_joined_at():
    a = _waiting(1, 210, 0)
    b = _waiting(2, 200, 5)
    c = _waiting(3, 200, 1)
    ordered = room_queue.assign_positions([a, b, c])
    assert [it.id for it in ordered] == [3, 2, 1]
    assert (c.queue_position, b.queue_position, a.queue_position) == (1, 2, 3)


def test_non_waiting_interviews_are_not_ranked():
    a = _waiting(1, 200, 0)
    running = _waiting(2, 100, 0, status="in_progress")
    ordered = room_queue.assign_positions([a, running])
    assert ordered == [a]
    assert a.queue_position == 1
    assert running.queue_position is None


def test_naive_and_aware_timestamps_sort_together():
    stored = _waiting(1, 200, 10)
    stored.joined_at = stored.joined_at.replace(tzinfo=None)
    fresh = _waiting(2, 200, 5)
    assert room_queue.head([stored, fresh]) is fresh


def test_back_of_queue_score_ranks_behind_everyone():
    a = _waiting(1, 200, 0)
    b = _waiting(2, 320, 1)
    c = _waiting(3, 210, 2)
    assert room_queue.back_of_queue_score(a, [a, b, c]) == 321
    # Never improves on its own score.
    assert room_queue.back_of_queue_score(b, [a, b]) == 320
    # Alone in the queue: nothing to move behind.
    assert room_queue.back_of_queue_score(a, [a]) == 200


def test_contiguity_check():
    a, b, c = _waiting(1, 200, 0), _waiting(2, 200, 1), _waiting(3, 200, 2)
    room_queue.assign_positions([a, b, c])
    assert room_queue.positions_are_contiguous([a, b, c])
    c.queue_position = 5
    assert not room_queue.positions_are_contiguous([a, b, c])
