from datetime import timedelta

from roombook.booking.availability import BLOCKED_BY_BIG_EVENT, BLOCKED_BY_PLACEHOLDER, check_availability
from roombook.booking.big_event import BigEventCoordinator
from roombook.booking.lifecycle import CONFLICT, CONFLICT_BLOCKING, ReservationManager
from roombook.config import BIG_EVENT_BLOCK_TAG, BIG_EVENT_BLOCK_TITLE, BIG_EVENT_TAGS
from roombook.models.reservation import Reservation
from roombook.schemas.reservation import ReservationCreate

from tests.conf_tests import (
    client,
    clear_db,
    test_db,
    test_user,
    admin_user,
    user_ctx,
    admin_ctx,
    admin_headers,
    make_room,
    rooms,
    make_reservation,
    notifier,
    local_at,
    tomorrow,
)

BIG_EVENT_TAG = BIG_EVENT_TAGS[1]


def big_event_request(room, day, title="Exco", **recurrence):
    return ReservationCreate(
        room_id=room.id,
        title=title,
        start_time=local_at(day, 14),
        end_time=local_at(day, 15),
        tags=[BIG_EVENT_TAG],
        **recurrence,
    )


def placeholders(db):
    return [
        r for r in db.query(Reservation).order_by(Reservation.room_id).all()
        if BIG_EVENT_BLOCK_TAG in (r.tags or [])
    ]


def test_buffered_interval():
    day = tomorrow()
    start, end = BigEventCoordinator.buffered_interval(local_at(day, 14), local_at(day, 15))
    assert start == local_at(day, 13, 30)
    assert end == local_at(day, 15, 30)


def test_conflict_in_buffer_zone_blocks_and_writes_nothing(test_db, rooms, test_user, admin_ctx, make_reservation):
    day = tomorrow()
    early = make_reservation(rooms[0], test_user, local_at(day, 13), local_at(day, 13, 45), title="Early call")

    result = ReservationManager(test_db, notifier, admin_ctx).create(big_event_request(rooms[2], day))

    assert result.success is False
    assert result.error_kind == CONFLICT
    assert result.conflict_type == CONFLICT_BLOCKING
    assert [event.reservation_id for event in result.conflicting_events] == [early.id]
    assert test_db.query(Reservation).count() == 1


def test_big_event_blocked_then_booked_after_cancelling(test_db, rooms, test_user, user_ctx, admin_ctx, make_reservation):
    day = tomorrow()
    room_c, room_d = rooms[2], rooms[3]
    meeting = make_reservation(room_d, test_user, local_at(day, 14, 10), local_at(day, 14, 20), title="1:1")
    admin = ReservationManager(test_db, notifier, admin_ctx)

    blocked = admin.create(big_event_request(room_c, day))
    assert blocked.success is False
    assert blocked.conflict_type == CONFLICT_BLOCKING
    assert len(blocked.conflicting_events) == 1
    event = blocked.conflicting_events[0]
    assert event.reservation_id == meeting.id
    assert event.room_name == "Room D"
    assert event.owner_email == test_user.email
    assert placeholders(test_db) == []

    assert ReservationManager(test_db, notifier, user_ctx).cancel(meeting.id).success

    booked = admin.create(big_event_request(room_c, day))
    assert booked.success is True
    assert booked.status == "approved"
    assert booked.lockouts_created == 4

    blocks = placeholders(test_db)
    assert sorted(b.room_id for b in blocks) == sorted(r.id for r in rooms if r.id != room_c.id)
    for block in blocks:
        assert block.title == BIG_EVENT_BLOCK_TITLE
        assert block.status == "approved"
        assert block.start_time == local_at(day, 13, 30)
        assert block.end_time == local_at(day, 15, 30)


def test_lockouts_skip_inactive_rooms(test_db, rooms, make_room, admin_ctx):
    make_room("Storage", is_active=False)
    result = ReservationManager(test_db, notifier, admin_ctx).create(big_event_request(rooms[0], tomorrow()))
    assert result.success is True
    assert result.lockouts_created == 4


def test_standard_bookings_around_a_big_event(test_db, rooms, admin_ctx):
    day = tomorrow()
    assert ReservationManager(test_db, notifier, admin_ctx).create(big_event_request(rooms[2], day)).success

    during = check_availability(test_db, local_at(day, 14, 30), local_at(day, 14, 45), rooms[2].id, [])
    assert during.code == BLOCKED_BY_BIG_EVENT

    in_buffer = check_availability(test_db, local_at(day, 13, 30), local_at(day, 13, 50), rooms[0].id, [])
    assert in_buffer.code == BLOCKED_BY_PLACEHOLDER

    after = check_availability(test_db, local_at(day, 15, 30), local_at(day, 16), rooms[0].id, [])
    assert after.available is True


def test_cancelling_big_event_releases_its_lockouts_only(test_db, rooms, test_user, admin_user, admin_ctx, make_reservation):
    day = tomorrow()
    admin = ReservationManager(test_db, notifier, admin_ctx)
    created = admin.create(big_event_request(rooms[2], day))
    assert created.success
    unrelated = make_reservation(rooms[0], test_user, local_at(day, 17), local_at(day, 18))
    other_block = make_reservation(
        rooms[1], admin_user, local_at(day, 16), local_at(day, 17),
        status="approved", tags=[BIG_EVENT_BLOCK_TAG], title=BIG_EVENT_BLOCK_TITLE,
    )

    assert admin.cancel(created.reservation_id).success

    test_db.expire_all()
    released = [
        b for b in placeholders(test_db)
        if b.start_time == local_at(day, 13, 30)
    ]
    assert len(released) == 4
    assert all(b.status == "cancelled" for b in released)
    assert test_db.get(Reservation, unrelated.id).status == "pending"
    assert test_db.get(Reservation, other_block.id).status == "approved"

    assert check_availability(test_db, local_at(day, 13, 30), local_at(day, 13, 50), rooms[0].id, []).available


def test_reserved_block_tag_is_rejected(test_db, rooms, admin_ctx):
    day = tomorrow()
    data = ReservationCreate(
        room_id=rooms[0].id,
        title="Sneaky",
        start_time=local_at(day, 9),
        end_time=local_at(day, 10),
        tags=[BIG_EVENT_BLOCK_TAG],
    )
    result = ReservationManager(test_db, notifier, admin_ctx).create(data)
    assert result.success is False
    assert result.error_kind == "validation"


def test_big_event_blocking_response(admin_headers, rooms, test_user, make_reservation):
    day = tomorrow()
    meeting = make_reservation(rooms[3], test_user, local_at(day, 14, 10), local_at(day, 14, 20))
    response = client.post(
        "/reservations/",
        json={
            "room_id": rooms[2].id,
            "title": "Exco",
            "start_time": local_at(day, 14).isoformat(),
            "end_time": local_at(day, 15).isoformat(),
            "tags": [BIG_EVENT_TAG],
        },
        headers=admin_headers,
    )
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["conflict_type"] == "BLOCKING"
    assert [e["reservation_id"] for e in detail["conflicting_events"]] == [meeting.id]
    assert detail["conflicting_events"][0]["room_name"] == "Room D"


def test_recurring_big_event_copies_recurrence_to_lockouts(test_db, rooms, admin_ctx):
    day = tomorrow()
    data = big_event_request(
        rooms[0], day, recurrence_pattern="weekly", recurrence_end_type="count", recurrence_count=3
    )
    result = ReservationManager(test_db, notifier, admin_ctx).create(data)
    assert result.success

    third_week = day + timedelta(weeks=2)
    blocked = check_availability(test_db, local_at(third_week, 13, 30), local_at(third_week, 13, 45), rooms[1].id, [])
    assert blocked.code == BLOCKED_BY_PLACEHOLDER
    fourth_week = day + timedelta(weeks=3)
    assert check_availability(test_db, local_at(fourth_week, 13, 30), local_at(fourth_week, 13, 45), rooms[1].id, []).available


def test_rejecting_pending_big_event_releases_its_lockouts(test_db, rooms, user_ctx, admin_ctx):
    day = tomorrow()
    created = ReservationManager(test_db, notifier, user_ctx).create(big_event_request(rooms[2], day))
    assert created.success is True
    assert created.status == "pending"
    assert created.lockouts_created == 4

    assert ReservationManager(test_db, notifier, admin_ctx).update_status(created.reservation_id, "rejected").success

    test_db.expire_all()
    blocks = placeholders(test_db)
    assert len(blocks) == 4
    assert all(block.status == "cancelled" for block in blocks)
    assert check_availability(test_db, local_at(day, 14), local_at(day, 15), rooms[1].id, []).available


def test_approving_pending_big_event_keeps_its_lockouts(test_db, rooms, user_ctx, admin_ctx):
    day = tomorrow()
    created = ReservationManager(test_db, notifier, user_ctx).create(big_event_request(rooms[2], day))
    assert created.success is True

    assert ReservationManager(test_db, notifier, admin_ctx).update_status(created.reservation_id, "approved").success

    test_db.expire_all()
    blocks = placeholders(test_db)
    assert len(blocks) == 4
    assert all(block.status == "approved" for block in blocks)
    blocked = check_availability(test_db, local_at(day, 13, 30), local_at(day, 13, 50), rooms[1].id, [])
    assert blocked.code == BLOCKED_BY_PLACEHOLDER
