import threading

from dinebook import db
from dinebook.errors import BookingError
from dinebook.models import Booking, TableLock, User
from dinebook.services import build_booking_service, Actor

from conftest import BOOKING_DATE, RecordingNotifier


def run_in_threads(app, workers):
    """Start every worker at the same moment, each inside its own app context."""
    barrier = threading.Barrier(len(workers))
    results = [None] * len(workers)

    def runner(index, work):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = ("ok", work())
            except BookingError as e:
                results[index] = (type(e).__name__, e)
            except Exception as e:
                # Recorded so the assertions report it instead of a missing result
                results[index] = ("unexpected " + type(e).__name__, e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=runner, args=(i, w)) for i, w in enumerate(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def booking_request(seed_ids, user_key, start_time, end_time):
    def work():
        service = build_booking_service(notifier=RecordingNotifier())
        user = db.session.get(User, seed_ids[user_key])
        booking = service.create_booking({
            "restaurant_id": seed_ids["restaurant_id"],
            "table_id": "t1",
            "date": BOOKING_DATE,
            "start_time": start_time,
            "end_time": end_time,
            "guest_count": 2,
            "customer": {"user_id": user.id, "name": user.full_name, "email": user.email},
        })
        return booking.id
    return work


def test_only_one_of_two_identical_requests_wins(app, seed_ids):
    results = run_in_threads(app, [
        booking_request(seed_ids, "alice_id", "18:00", "20:00"),
        booking_request(seed_ids, "bob_id", "18:00", "20:00"),
    ])

    outcomes = sorted(outcome for outcome, _ in results)
    assert outcomes == ["ConflictError", "ok"]
    assert Booking.query.filter_by(table_id="t1", date=BOOKING_DATE).count() == 1


def test_overlapping_requests_have_a_single_winner(app, seed_ids):
    results = run_in_threads(app, [
        booking_request(seed_ids, "alice_id", "18:00", "20:00"),
        booking_request(seed_ids, "bob_id", "19:00", "21:00"),
        booking_request(seed_ids, "alice_id", "17:30", "19:30"),
    ])

    assert [outcome for outcome, _ in results].count("ok") == 1
    assert Booking.query.filter_by(table_id="t1").count() == 1


def test_adjacent_requests_both_win(app, seed_ids):
    results = run_in_threads(app, [
        booking_request(seed_ids, "alice_id", "18:00", "20:00"),
        booking_request(seed_ids, "bob_id", "20:00", "22:00"),
    ])

    assert [outcome for outcome, _ in results] == ["ok", "ok"]


def test_concurrent_transitions_apply_once(app, seed_ids, make_booking, owner, alice):
    booking_id = make_booking().id

    def transition(actor, status):
        def work():
            service = build_booking_service(notifier=RecordingNotifier())
            return service.transition_booking(booking_id, status, actor).status
        return work

    results = run_in_threads(app, [
        transition(owner, "confirmed"),
        transition(alice, "cancelled"),
    ])

    db.session.expire_all()
    booking = db.session.get(Booking, booking_id)
    modified = [entry for entry in booking.history if entry.action == "modified"]
    winners = [value for outcome, value in results if outcome == "ok"]

    assert len(modified) == len(winners)
    if len(winners) == 2:
        # The cancel ran after the confirm had committed
        assert booking.status == "cancelled"
    else:
        assert winners == [booking.status]
        assert [outcome for outcome, _ in results if outcome != "ok"] in (
            ["ConflictError"], ["InvalidTransitionError"])


def lock_request(seed_ids, user_key, start_time, end_time):
    def work():
        service = build_booking_service(notifier=RecordingNotifier())
        return service.hold_table({
            "restaurant_id": seed_ids["restaurant_id"],
            "table_id": "t1",
            "date": BOOKING_DATE,
            "start_time": start_time,
            "end_time": end_time,
            "guest_count": 2,
        }, Actor(str(seed_ids[user_key]), "user")).lock_ref
    return work


def test_only_one_of_two_competing_locks_wins(app, seed_ids):
    results = run_in_threads(app, [
        lock_request(seed_ids, "alice_id", "18:00", "20:00"),
        lock_request(seed_ids, "bob_id", "19:00", "21:00"),
    ])

    assert sorted(outcome for outcome, _ in results) == ["ConflictError", "ok"]
    assert TableLock.query.filter_by(status="active").count() == 1


def test_lock_and_booking_race_has_a_single_winner(app, seed_ids):
    results = run_in_threads(app, [
        lock_request(seed_ids, "alice_id", "18:00", "20:00"),
        booking_request(seed_ids, "bob_id", "18:00", "20:00"),
    ])

    assert sorted(outcome for outcome, _ in results) == ["ConflictError", "ok"]
    held = TableLock.query.filter_by(status="active").count()
    booked = Booking.query.filter_by(table_id="t1").count()
    assert held + booked == 1


def test_confirm_and_release_race_applies_one(app, seed_ids, service, alice):
    lock_ref = service.hold_table({
        "restaurant_id": seed_ids["restaurant_id"],
        "table_id": "t1",
        "date": BOOKING_DATE,
        "start_time": "18:00",
        "end_time": "20:00",
        "guest_count": 2,
    }, alice).lock_ref

    def confirm():
        service = build_booking_service(notifier=RecordingNotifier())
        return service.confirm_table_lock(lock_ref, alice).status

    def release():
        service = build_booking_service(notifier=RecordingNotifier())
        return service.release_table_lock(lock_ref, alice).status

    results = run_in_threads(app, [confirm, release])

    assert [outcome for outcome, _ in results].count("ok") == 1
    db.session.expire_all()
    lock = TableLock.query.filter_by(lock_ref=lock_ref).one()
    bookings = Booking.query.filter_by(table_id="t1").count()
    if lock.status == "confirmed":
        assert bookings == 1
    else:
        assert lock.status == "released"
        assert bookings == 0
