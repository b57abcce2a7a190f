"""
Racing writers against one room, each on its own session and connection.
"""
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

from backend.app.models.interview import Interview
from backend.app.services import scheduling
from backend.app.utils.error_handlers import AppError, ConflictError


def _race(session_factory, n: int, call):
    """Run `call(db, i)` on `n` threads released together; collect results or errors."""
    barrier = Barrier(n)

    def worker(i):
        db = session_factory()
        try:
            barrier.wait()
            return call(db, i)
        except AppError as e:
            return e
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(worker, range(n)))


def test_concurrent_starts_admit_exactly_one(session_factory, db_session, company, committee, make_user):
    for _ in range(3):
        scheduling.join_queue(
            db_session,
            student_id=make_user("student", student_status="ensa").id,
            company_id=company.id,
            opportunity_type="pfe",
        )
    company_id, committee_id = company.id, committee.id

    results = _race(
        session_factory,
        2,
        lambda db, _: scheduling.start_interview(db, company_id=company_id, committee_user_id=committee_id).id,
    )

    started = [r for r in results if isinstance(r, int)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(started) == 1
    assert len(conflicts) == 1

    db_session.expire_all()
    running = db_session.query(Interview).filter(Interview.status == "in_progress").all()
    assert [it.id for it in running] == started
    assert scheduling.validate_queue_integrity(db_session, company_id=company_id)["valid"] is True


def test_concurrent_duplicate_joins_create_one_record(session_factory, db_session, company, student):
    company_id, student_id = company.id, student.id

    results = _race(
        session_factory,
        5,
        lambda db, _: scheduling.join_queue(
            db, student_id=student_id, company_id=company_id, opportunity_type="pfe"
        ).id,
    )

    assert len([r for r in results if isinstance(r, int)]) == 1
    assert all(isinstance(r, ConflictError) for r in results if not isinstance(r, int))

    db_session.expire_all()
    assert db_session.query(Interview).filter(Interview.student_id == student_id).count() == 1


def test_concurrent_joins_keep_positions_contiguous(session_factory, db_session, company, make_user):
    student_ids = [make_user("student", student_status="ensa").id for _ in range(6)]
    company_id = company.id
    def join(db, i):
        return scheduling.join_queue(
            db, student_id=student_ids[i], company_id=company_id, opportunity_type="pfe"
        ).queue_position

    results = _race(session_factory, len(student_ids), join)
    assert not [r for r in results if isinstance(r, AppError)]

    db_session.expire_all()
    positions = sorted(
        it.queue_position
        for it in db_session.query(Interview).filter(Interview.company_id == company_id).all()
    )
    assert positions == list(range(1, len(student_ids) + 1))
