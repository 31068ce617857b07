import csv
import io
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

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
from models.geofence_location import GeofenceLocation
from utils.datetime_helpers import hours_between
from utils.geofence import RankedFence, resolve_nearest_fence
from utils.timezone_helpers import month_bounds

logger = logging.getLogger(__name__)

RECENT_ATTENDANCE_LIMIT = 14

# Conditional UPDATEs go through Core so rowcount reflects the compare-and-set
ATTENDANCE_TABLE = AttendanceRecord.__table__


def _admit(employee_id: str, location, fences: Sequence[GeofenceLocation]) -> RankedFence:
    nearest = resolve_nearest_fence(location, fences)
    if nearest is None or not nearest.inside:
        if nearest is None:
            logger.warning(f"[ATTENDANCE] {employee_id} rejected: no applicable geofence")
        else:
            logger.warning(
                f"[ATTENDANCE] {employee_id} rejected: {nearest.distance_meters:.0f}m from "
                f"{nearest.name} (limit {nearest.allowed_radius:.0f}m)"
            )
        raise OutsideGeofenceError()
    return nearest


def _fence_note(action: str, nearest: RankedFence) -> str:
    return f"{action} at {nearest.name} ({round(nearest.distance_meters)}m)"


class AttendanceService:

    @staticmethod
    def get_record(employee_id: str, day: date, session: Session) -> Optional[AttendanceRecord]:
        return session.exec(
            select(AttendanceRecord)
            .where(AttendanceRecord.employee_id == employee_id)
            .where(AttendanceRecord.date == day)
        ).first()

    @staticmethod
    def get_recent(
        employee_id: str, session: Session, limit: int = RECENT_ATTENDANCE_LIMIT
    ) -> List[AttendanceRecord]:
        return list(
            session.exec(
                select(AttendanceRecord)
                .where(AttendanceRecord.employee_id == employee_id)
                .order_by(col(AttendanceRecord.date).desc())
                .limit(limit)
            ).all()
        )

    @staticmethod
    def check_in(
        employee_id: str,
        day: date,
        location,
        fences: Sequence[GeofenceLocation],
        session: Session,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """
        NoRecord -> CheckedIn.

        The geofence is checked before anything is read or written. A record
        HR created earlier without a check-in (e.g. marked absent) is filled in
        rather than duplicated.
        """
        now = now or datetime.now(timezone.utc)
        nearest = _admit(employee_id, location, fences)

        record = AttendanceService.get_record(employee_id, day, session)
        if record is not None and record.check_in is not None:
            raise AlreadyCheckedInError()

        note = _fence_note("Checked in", nearest)

        try:
            if record is None:
                record = AttendanceRecord(
                    employee_id=employee_id,
                    date=day,
                    check_in=now,
                    check_in_latitude=location.latitude,
                    check_in_longitude=location.longitude,
                    check_in_method=CheckInMethod.GPS_GEOFENCE,
                    geofence_verified=True,
                    status=AttendanceStatus.PRESENT,
                    notes=note,
                    created_at=now,
                )
                session.add(record)
                # Unique (employee_id, date) settles concurrent inserts here
                session.flush()
            else:
                notes = f"{record.notes} | {note}" if record.notes else note
                result = session.connection().execute(
                    update(ATTENDANCE_TABLE)
                    .where(ATTENDANCE_TABLE.c.id == record.id)
                    .where(ATTENDANCE_TABLE.c.check_in.is_(None))
                    .values(
                        check_in=now,
                        check_in_latitude=location.latitude,
                        check_in_longitude=location.longitude,
                        check_in_method=CheckInMethod.GPS_GEOFENCE,
                        geofence_verified=True,
                        status=AttendanceStatus.PRESENT,
                        notes=notes,
                        updated_at=now,
                    )
                )
                if result.rowcount == 0:
                    session.rollback()
                    raise AlreadyCheckedInError()

            session.add(
                AttendanceEvent(
                    attendance_id=record.id,
                    employee_id=employee_id,
                    event=AttendanceEventType.CHECK_IN,
                    geofence_id=nearest.fence.id,
                    geofence_name=nearest.name,
                    distance_meters=round(nearest.distance_meters, 2),
                    actor_id=employee_id,
                    created_at=now,
                )
            )
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(f"[ATTENDANCE] Concurrent check-in for {employee_id} on {day} lost the race")
            raise AlreadyCheckedInError()
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"[ATTENDANCE] Failed to save check-in for {employee_id} on {day}")
            raise

        session.refresh(record)
        logger.info(f"[ATTENDANCE] {employee_id} checked in on {day}: {note}")
        return record

    @staticmethod
    def check_out(
        employee_id: str,
        day: date,
        location,
        fences: Sequence[GeofenceLocation],
        session: Session,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """CheckedIn -> CheckedOut. Sets check_out and work_hours exactly once."""
        now = now or datetime.now(timezone.utc)
        nearest = _admit(employee_id, location, fences)

        record = AttendanceService.get_record(employee_id, day, session)
        if record is None or record.check_in is None:
            raise NoCheckInError()
        if record.check_out is not None:
            raise AlreadyCheckedOutError()

        work_hours = hours_between(record.check_in, now)
        note = _fence_note("Checked out", nearest)
        notes = f"{record.notes} | {note}" if record.notes else note

        try:
            # Compare-and-set: only the first check-out for the row wins
            result = session.connection().execute(
                update(ATTENDANCE_TABLE)
                .where(ATTENDANCE_TABLE.c.id == record.id)
                .where(ATTENDANCE_TABLE.c.check_out.is_(None))
                .values(check_out=now, work_hours=work_hours, notes=notes, updated_at=now)
            )
            if result.rowcount == 0:
                session.rollback()
                raise AlreadyCheckedOutError()

            session.add(
                AttendanceEvent(
                    attendance_id=record.id,
                    employee_id=employee_id,
                    event=AttendanceEventType.CHECK_OUT,
                    geofence_id=nearest.fence.id,
                    geofence_name=nearest.name,
                    distance_meters=round(nearest.distance_meters, 2),
                    actor_id=employee_id,
                    created_at=now,
                )
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"[ATTENDANCE] Failed to save check-out for {employee_id} on {day}")
            raise

        session.refresh(record)
        logger.info(f"[ATTENDANCE] {employee_id} checked out on {day} after {work_hours}h")
        return record

    @staticmethod
    def mark_status(
        employee_id: str,
        day: date,
        status: AttendanceStatus,
        session: Session,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """HR override: set the day's status, creating the record if needed."""
        now = now or datetime.now(timezone.utc)

        record = AttendanceService.get_record(employee_id, day, session)
        try:
            if record is None:
                record = AttendanceRecord(
                    employee_id=employee_id,
                    date=day,
                    status=status,
                    check_in=now if status == AttendanceStatus.PRESENT else None,
                    check_in_method=CheckInMethod.MANUAL,
                    geofence_verified=False,
                    created_at=now,
                )
                session.add(record)
            else:
                record.status = status
                record.updated_at = now
                session.add(record)
            session.flush()

            session.add(
                AttendanceEvent(
                    attendance_id=record.id,
                    employee_id=employee_id,
                    event=AttendanceEventType.MANUAL_MARK,
                    actor_id=actor_id,
                    created_at=now,
                )
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"[ATTENDANCE] Failed to mark {employee_id} {status.value} on {day}")
            raise

        session.refresh(record)
        logger.info(f"[ATTENDANCE] {actor_id} marked {employee_id} {status.value} on {day}")
        return record

    @staticmethod
    def list_month(year: int, month: int, session: Session) -> List[AttendanceRecord]:
        first_day, last_day = month_bounds(year, month)
        return list(
            session.exec(
                select(AttendanceRecord)
                .where(AttendanceRecord.date >= first_day)
                .where(AttendanceRecord.date <= last_day)
                .order_by(AttendanceRecord.employee_id, AttendanceRecord.date)
            ).all()
        )

    @staticmethod
    def month_csv(
        year: int,
        month: int,
        records: Sequence[AttendanceRecord],
        employees: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """
        One row per employee, one column per day of the month, each cell the
        status for that day (empty when nothing was recorded).

        `employees` is a list of {"id", "name", "department"} dicts; employees
        with records but missing from the list are still exported by id.
        """
        first_day, last_day = month_bounds(year, month)
        day_numbers = range(first_day.day, last_day.day + 1)

        by_employee: Dict[str, Dict[int, str]] = {}
        for record in records:
            by_employee.setdefault(record.employee_id, {})[record.date.day] = record.status.value

        rows = list(employees or [])
        known_ids = {e["id"] for e in rows}
        for employee_id in sorted(by_employee):
            if employee_id not in known_ids:
                rows.append({"id": employee_id, "name": employee_id, "department": ""})

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["Employee", "Department", *[f"{d:02d}" for d in day_numbers]])
        for employee in rows:
            statuses = by_employee.get(employee["id"], {})
            writer.writerow(
                [
                    employee.get("name") or employee["id"],
                    employee.get("department") or "",
                    *[statuses.get(d, "") for d in day_numbers],
                ]
            )
        return buffer.getvalue()
