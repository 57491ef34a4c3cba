import random
from datetime import timedelta

import pytest

from dinebook.errors import ValidationError, NotFoundError
from dinebook.services.availability import windows_overlap

from conftest import BOOKING_DATE, TABLE_IDS


def hhmm(minutes):
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def test_back_to_back_windows_do_not_overlap():
    assert not windows_overlap("18:00", "20:00", "20:00", "22:00")
    assert not windows_overlap("20:00", "22:00", "18:00", "20:00")
    assert windows_overlap("18:00", "20:00", "19:59", "22:00")
    assert windows_overlap("18:00", "20:00", "18:30", "19:00")


def test_every_table_free_without_bookings(service, seed_ids):
    result = service.check_availability(
        seed_ids["restaurant_id"], BOOKING_DATE, "18:00", "20:00")
    assert result == {table_id: False for table_id in TABLE_IDS}


def test_inactive_floorplan_tables_are_not_candidates(service, seed_ids):
    result = service.check_availability(
        seed_ids["restaurant_id"], BOOKING_DATE, "18:00", "20:00")
    assert "x1" not in result

    with pytest.raises(NotFoundError):
        service.check_availability(
            seed_ids["restaurant_id"], BOOKING_DATE, "18:00", "20:00", table_ids=["x1"])


def test_booked_table_is_occupied_for_overlapping_window(service, seed_ids, make_booking):
    make_booking(table_id="t2", start_time="18:00", end_time="20:00")
    rid = seed_ids["restaurant_id"]

    assert service.check_availability(rid, BOOKING_DATE, "19:00", "21:00")["t2"] is True
    assert service.check_availability(rid, BOOKING_DATE, "20:00", "22:00")["t2"] is False
    assert service.check_availability(rid, BOOKING_DATE, "16:00", "18:00")["t2"] is False
    assert service.check_availability(rid, BOOKING_DATE, "19:00", "21:00")["t1"] is False


def test_booked_tables_reports_conflicting_windows(service, seed_ids, make_booking):
    booking = make_booking(table_id="t3", start_time="12:00", end_time="13:30")
    booked = service.booked_tables(seed_ids["restaurant_id"], BOOKING_DATE, "13:00", "14:00")

    assert list(booked) == ["t3"]
    assert booked["t3"][0]["booking_ref"] == booking.booking_ref
    assert booked["t3"][0]["start_time"] == "12:00"
    assert booked["t3"][0]["end_time"] == "13:30"


def test_other_dates_and_restaurants_do_not_block(service, seed_ids, make_booking):
    make_booking(table_id="t1")
    other_day = BOOKING_DATE + timedelta(days=1)

    assert service.check_availability(
        seed_ids["restaurant_id"], other_day, "18:00", "20:00")["t1"] is False
    assert service.check_availability(
        seed_ids["other_restaurant_id"], BOOKING_DATE, "18:00", "20:00")["t1"] is False


@pytest.mark.parametrize("status", ["cancelled", "completed"])
def test_terminal_bookings_release_the_table(service, seed_ids, make_booking, owner, status):
    booking = make_booking(table_id="t4")
    service.transition_booking(booking.id, "confirmed", owner)
    service.transition_booking(booking.id, status, owner)

    result = service.check_availability(seed_ids["restaurant_id"], BOOKING_DATE, "18:00", "20:00")
    assert result["t4"] is False


def test_confirmed_booking_still_occupies(service, seed_ids, make_booking, owner):
    booking = make_booking(table_id="t4")
    service.transition_booking(booking.id, "confirmed", owner)

    result = service.check_availability(seed_ids["restaurant_id"], BOOKING_DATE, "18:30", "19:00")
    assert result["t4"] is True


@pytest.mark.parametrize("start, end", [
    ("20:00", "18:00"),
    ("18:00", "18:00"),
    ("25:00", "26:00"),
    ("18h", "20:00"),
])
def test_invalid_windows_are_rejected(service, seed_ids, start, end):
    with pytest.raises(ValidationError):
        service.check_availability(seed_ids["restaurant_id"], BOOKING_DATE, start, end)


def test_unknown_restaurant(service):
    with pytest.raises(NotFoundError):
        service.check_availability(9999, BOOKING_DATE, "18:00", "20:00")


def test_occupancy_matches_half_open_overlap(service, seed_ids, make_booking):
    rng = random.Random(7)
    existing = []
    cursor = 10 * 60
    # Non-overlapping bookings on t5 with random gaps between them
    while cursor < 21 * 60:
        start = cursor + rng.choice([0, 15, 30])
        end = start + rng.choice([30, 45, 60, 90])
        if end > 23 * 60:
            break
        make_booking(table_id="t5", start_time=hhmm(start), end_time=hhmm(end))
        existing.append((hhmm(start), hhmm(end)))
        cursor = end

    for _ in range(40):
        start = rng.randrange(10 * 60, 22 * 60, 15)
        end = start + rng.choice([15, 30, 60, 120])
        query = (hhmm(start), hhmm(min(end, 23 * 60)))
        expected = any(windows_overlap(query[0], query[1], s, e) for s, e in existing)
        result = service.check_availability(
            seed_ids["restaurant_id"], BOOKING_DATE, query[0], query[1], table_ids=["t5"])
        assert result["t5"] is expected, query


def test_is_free_for_single_table(service, seed_ids, make_booking):
    make_booking(table_id="t2", start_time="12:00", end_time="13:00")
    checker = service.checker
    rid = seed_ids["restaurant_id"]

    assert checker.is_free(rid, "t2", BOOKING_DATE, "13:00", "14:00") is True
    assert checker.is_free(rid, "t2", BOOKING_DATE, "12:30", "13:30") is False
