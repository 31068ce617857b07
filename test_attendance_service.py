#!/usr/bin/env python3
"""
Check-in / check-out state machine against a real (SQLite) session.
"""

from datetime import date, datetime, timedelta, timezone
from math import degrees

import pytest
from sqlmodel import select

from core.errors import (
    AlreadyCheckedInError,
    AlreadyCheckedOutError,
    NoCheckInError,
    OutsideGeofenceError,
)
from models.attendance import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceRecord,
    AttendanceStatus,
    CheckInMethod,
)
from services.attendance_service import AttendanceService
from services.location_provider import LocationReading
from utils.geofence import EARTH_RADIUS_METERS

EMPLOYEE = "emp-001"
DAY = date(2025, 6, 7)
T = datetime(2025, 6, 7, 5, 0, tzinfo=timezone.utc)

AT_HQ = LocationReading(latitude=25.2048, longitude=55.2708)
# ~150 m north of HQ: inside the configured 150 m, outside the 100 m cap
NEAR_HQ = LocationReading(latitude=25.2048 + degrees(150 / EARTH_RADIUS_METERS), longitude=55.2708)
FAR_AWAY = LocationReading(latitude=25.1000, longitude=55.1000)


def records(session):
    return session.exec(select(AttendanceRecord)).all()


def events(session):
    return session.exec(select(AttendanceEvent).order_by(AttendanceEvent.id)).all()


def test_check_in_creates_record(session, dubai_fences):
    record = AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    assert record.id is not None
    assert record.employee_id == EMPLOYEE
    assert record.date == DAY
    assert record.check_in.replace(tzinfo=timezone.utc) == T
    assert record.check_out is None
    assert record.work_hours is None
    assert record.check_in_latitude == 25.2048
    assert record.check_in_longitude == 55.2708
    assert record.check_in_method == CheckInMethod.GPS_GEOFENCE
    assert record.geofence_verified is True
    assert record.status == AttendanceStatus.PRESENT
    assert record.notes == "Checked in at Dubai HQ (0m)"

    [event] = events(session)
    assert event.event == AttendanceEventType.CHECK_IN
    assert event.geofence_id == "A"
    assert event.attendance_id == record.id


def test_check_in_outside_geofence_writes_nothing(session, dubai_fences):
    with pytest.raises(OutsideGeofenceError):
        AttendanceService.check_in(EMPLOYEE, DAY, FAR_AWAY, dubai_fences, session, now=T)

    assert records(session) == []
    assert events(session) == []


def test_capped_radius_rejects_check_in(session, dubai_fences):
    with pytest.raises(OutsideGeofenceError):
        AttendanceService.check_in(EMPLOYEE, DAY, NEAR_HQ, dubai_fences, session, now=T)
    assert records(session) == []


def test_check_in_without_fences(session):
    with pytest.raises(OutsideGeofenceError):
        AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, [], session, now=T)
    assert records(session) == []


def test_second_check_in_is_rejected(session, dubai_fences):
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    with pytest.raises(AlreadyCheckedInError):
        AttendanceService.check_in(
            EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=1)
        )

    [record] = records(session)
    assert record.check_in.replace(tzinfo=timezone.utc) == T


def test_check_in_on_another_day_or_by_another_employee(session, dubai_fences):
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)
    AttendanceService.check_in(EMPLOYEE, DAY + timedelta(days=1), AT_HQ, dubai_fences, session, now=T + timedelta(days=1))
    AttendanceService.check_in("emp-002", DAY, AT_HQ, dubai_fences, session, now=T)

    assert len(records(session)) == 3


def test_check_out_sets_hours_and_appends_notes(session, dubai_fences):
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    record = AttendanceService.check_out(
        EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=2, minutes=30)
    )

    assert record.work_hours == 2.5
    assert record.check_out.replace(tzinfo=timezone.utc) == T + timedelta(hours=2, minutes=30)
    assert record.notes == "Checked in at Dubai HQ (0m) | Checked out at Dubai HQ (0m)"
    assert [e.event for e in events(session)] == [
        AttendanceEventType.CHECK_IN,
        AttendanceEventType.CHECK_OUT,
    ]


def test_work_hours_are_rounded(session, dubai_fences):
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    record = AttendanceService.check_out(
        EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=8, minutes=20)
    )
    assert record.work_hours == 8.33


def test_check_out_without_check_in(session, dubai_fences):
    with pytest.raises(NoCheckInError):
        AttendanceService.check_out(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    assert records(session) == []


def test_check_out_twice(session, dubai_fences):
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)
    AttendanceService.check_out(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=1))

    with pytest.raises(AlreadyCheckedOutError):
        AttendanceService.check_out(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=3))

    [record] = records(session)
    assert record.work_hours == 1.0


def test_check_out_outside_geofence_leaves_record_alone(session, dubai_fences):
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    with pytest.raises(OutsideGeofenceError):
        AttendanceService.check_out(EMPLOYEE, DAY, FAR_AWAY, dubai_fences, session, now=T + timedelta(hours=4))

    [record] = records(session)
    assert record.check_out is None
    assert record.work_hours is None
    assert record.notes == "Checked in at Dubai HQ (0m)"


def test_geofence_is_checked_before_state(session, dubai_fences):
    """Outside the fence and never checked in: the location error wins."""
    with pytest.raises(OutsideGeofenceError):
        AttendanceService.check_out(EMPLOYEE, DAY, FAR_AWAY, dubai_fences, session, now=T)


def test_check_out_at_other_fence(session, dubai_fences):
    site = LocationReading(latitude=25.2100, longitude=55.2800)
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    record = AttendanceService.check_out(EMPLOYEE, DAY, site, dubai_fences, session, now=T + timedelta(hours=9))

    assert record.notes.endswith("| Checked out at Dubai Site (0m)")
    assert events(session)[-1].geofence_id == "B"


def test_check_in_fills_record_marked_by_hr(session, dubai_fences):
    AttendanceService.mark_status(EMPLOYEE, DAY, AttendanceStatus.ABSENT, session, actor_id="hr-1", now=T)

    record = AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(minutes=10))

    assert len(records(session)) == 1
    assert record.status == AttendanceStatus.PRESENT
    assert record.geofence_verified is True
    assert record.check_in.replace(tzinfo=timezone.utc) == T + timedelta(minutes=10)


def stale_copy(record, **changes):
    """Detached snapshot of `record` as a slower request would have read it."""
    fields = dict(
        id=record.id,
        employee_id=record.employee_id,
        date=record.date,
        check_in=record.check_in,
        check_out=record.check_out,
        status=record.status,
        notes=record.notes,
    )
    fields.update(changes)
    return AttendanceRecord(**fields)


def serve_stale_record(monkeypatch, record):
    monkeypatch.setattr(AttendanceService, "get_record", staticmethod(lambda *args, **kwargs: record))


def test_concurrent_check_in_loses_on_unique_day(session, dubai_fences, monkeypatch):
    """Both requests saw no record; the unique (employee_id, date) insert decides."""
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)

    serve_stale_record(monkeypatch, None)
    with pytest.raises(AlreadyCheckedInError):
        AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(minutes=1))
    monkeypatch.undo()

    [record] = records(session)
    assert record.check_in.replace(tzinfo=timezone.utc) == T
    assert [e.event for e in events(session)] == [AttendanceEventType.CHECK_IN]


def test_concurrent_check_out_only_first_wins(session, dubai_fences, monkeypatch):
    record = AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T)
    before_check_out = stale_copy(record)
    AttendanceService.check_out(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=1))

    serve_stale_record(monkeypatch, before_check_out)
    with pytest.raises(AlreadyCheckedOutError):
        AttendanceService.check_out(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=3))
    monkeypatch.undo()

    [record] = records(session)
    assert record.work_hours == 1.0
    assert record.check_out.replace(tzinfo=timezone.utc) == T + timedelta(hours=1)
    assert [e.event for e in events(session)] == [
        AttendanceEventType.CHECK_IN,
        AttendanceEventType.CHECK_OUT,
    ]


def test_concurrent_fill_of_hr_record_only_first_wins(session, dubai_fences, monkeypatch):
    marked = AttendanceService.mark_status(EMPLOYEE, DAY, AttendanceStatus.ABSENT, session, actor_id="hr-1", now=T)
    before_check_in = stale_copy(marked)
    AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(minutes=10))

    serve_stale_record(monkeypatch, before_check_in)
    with pytest.raises(AlreadyCheckedInError):
        AttendanceService.check_in(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(minutes=20))
    monkeypatch.undo()

    [record] = records(session)
    assert record.check_in.replace(tzinfo=timezone.utc) == T + timedelta(minutes=10)
    assert record.notes == "Checked in at Dubai HQ (0m)"


def test_check_out_without_prior_notes(session, dubai_fences):
    AttendanceService.mark_status(EMPLOYEE, DAY, AttendanceStatus.PRESENT, session, actor_id="hr-1", now=T)

    record = AttendanceService.check_out(EMPLOYEE, DAY, AT_HQ, dubai_fences, session, now=T + timedelta(hours=8))

    assert record.work_hours == 8.0
    assert record.notes == "Checked out at Dubai HQ (0m)"


def test_mark_status_creates_and_updates(session):
    created = AttendanceService.mark_status(EMPLOYEE, DAY, AttendanceStatus.PRESENT, session, actor_id="hr-1", now=T)

    assert created.check_in.replace(tzinfo=timezone.utc) == T
    assert created.check_in_method == CheckInMethod.MANUAL
    assert created.geofence_verified is False

    updated = AttendanceService.mark_status(EMPLOYEE, DAY, AttendanceStatus.HALF_DAY, session, actor_id="hr-1", now=T)
    assert updated.id == created.id
    assert updated.status == AttendanceStatus.HALF_DAY
    assert [e.actor_id for e in events(session)] == ["hr-1", "hr-1"]

    leave = AttendanceService.mark_status("emp-002", DAY, AttendanceStatus.ON_LEAVE, session, actor_id="hr-1", now=T)
    assert leave.check_in is None


def test_recent_is_newest_first_and_limited(session, dubai_fences):
    for offset in range(5):
        day = DAY + timedelta(days=offset)
        AttendanceService.check_in(EMPLOYEE, day, AT_HQ, dubai_fences, session, now=T + timedelta(days=offset))

    recent = AttendanceService.get_recent(EMPLOYEE, session, limit=3)

    assert [r.date for r in recent] == [DAY + timedelta(days=d) for d in (4, 3, 2)]


def test_month_listing_and_csv(session):
    AttendanceService.mark_status("emp-001", date(2025, 6, 1), AttendanceStatus.PRESENT, session, actor_id="hr", now=T)
    AttendanceService.mark_status("emp-001", date(2025, 6, 30), AttendanceStatus.ON_LEAVE, session, actor_id="hr", now=T)
    AttendanceService.mark_status("emp-002", date(2025, 6, 2), AttendanceStatus.ABSENT, session, actor_id="hr", now=T)
    AttendanceService.mark_status("emp-001", date(2025, 7, 1), AttendanceStatus.PRESENT, session, actor_id="hr", now=T)

    june = AttendanceService.list_month(2025, 6, session)
    assert [(r.employee_id, r.date.day) for r in june] == [("emp-001", 1), ("emp-001", 30), ("emp-002", 2)]

    directory = [{"id": "emp-001", "name": "Asha Menon", "department": "Sales"}]
    lines = AttendanceService.month_csv(2025, 6, june, directory).splitlines()

    header = lines[0].split(",")
    assert header[:3] == ["Employee", "Department", "01"]
    assert header[-1] == "30"

    asha = lines[1].split(",")
    assert asha[:3] == ["Asha Menon", "Sales", "present"]
    assert asha[-1] == "on_leave"

    # Not in the directory, still exported by id
    other = lines[2].split(",")
    assert other[0] == "emp-002"
    assert other[3] == "absent"
    assert len(lines) == 3
