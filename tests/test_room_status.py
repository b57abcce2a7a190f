import pytest

from backend.app.services import scheduling
from backend.app.services.room_status import (
    ROOM_AVAILABLE,
    ROOM_IN_USE,
    ROOM_WAITING,
    derive_room_status,
    get_room_statuses,
)
from backend.app.utils.error_handlers import NotFoundError


def test_derive_room_status():
    assert derive_room_status(False, 0) == ROOM_AVAILABLE
    assert derive_room_status(False, 2) == ROOM_WAITING
    assert derive_room_status(True, 0) == ROOM_IN_USE
    assert derive_room_status(True, 5) == ROOM_IN_USE


def test_room_board_follows_the_queue(db_session, company, committee, make_user):
    (status,) = get_room_statuses(db_session)
    assert status["room_name"] == "R101"
    assert status["company_name"] == "Acme"
    assert status["status"] == ROOM_AVAILABLE
    assert status["current_interview"] is None
    assert status["queue_stats"] == {"total_waiting": 0, "estimated_wait_time": 0}
    assert status["committee_member"]["id"] == committee.id

    s1 = make_user("student", student_status="ensa", first_name="Salma", name="Idrissi")
    s2 = make_user("student", student_status="ensa")
    for s in (s1, s2):
        scheduling.join_queue(db_session, student_id=s.id, company_id=company.id, opportunity_type="pfe")

    (status,) = get_room_statuses(db_session, company_id=company.id)
    assert status["status"] == ROOM_WAITING
    assert status["queue_stats"]["total_waiting"] == 2

    started = scheduling.start_interview(db_session, company_id=company.id, committee_user_id=committee.id)
    (status,) = get_room_statuses(db_session, company_id=company.id)
    assert status["status"] == ROOM_IN_USE
    assert status["status_message"] == "Interview in progress"
    assert status["current_interview"]["interview_id"] == started.id
    assert status["current_interview"]["student_name"] == "Salma Idrissi"
    assert status["queue_stats"] == {"total_waiting": 1, "estimated_wait_time": 20}

    scheduling.complete_interview(db_session, interview_id=started.id, committee_user_id=committee.id)
    (status,) = get_room_statuses(db_session, company_id=company.id)
    assert status["status"] == ROOM_WAITING


def test_inactive_companies_are_not_listed(db_session, company, make_company):
    make_company("R777", is_active=False)
    rooms = [s["room_name"] for s in get_room_statuses(db_session)]
    assert rooms == ["R101"]


def test_unknown_company_is_not_found(db_session, company):
    with pytest.raises(NotFoundError):
        get_room_statuses(db_session, company_id=company.id + 100)
