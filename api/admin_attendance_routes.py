import logging
from datetime import date as Date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.deps import require_hr_role
from core.firebase import get_firestore_client
from db.session import get_session
from models.attendance import AttendanceStatus
from services.attendance_service import AttendanceService
from utils.timezone_helpers import org_today, parse_month

logger = logging.getLogger(__name__)

router = APIRouter()

# --- Pydantic Models for API Requests ---


class MarkAttendanceRequest(BaseModel):
    employee_id: str
    date: Date
    status: AttendanceStatus


# --- Helper Functions ---


def get_employee_directory() -> List[Dict[str, str]]:
    """Employees from the Firestore users collection, for the monthly sheet"""
    try:
        employees = []
        for doc in get_firestore_client().collection("users").stream():
            profile = doc.to_dict() or {}
            employees.append(
                {
                    "id": doc.id,
                    "name": profile.get("displayName") or profile.get("email") or doc.id,
                    "department": profile.get("department", ""),
                }
            )
        return sorted(employees, key=lambda e: e["name"].lower())
    except Exception as e:
        # Export still works from attendance rows alone
        logger.error(f"[ATTENDANCE] Could not load employee directory: {e}")
        return []


def _parse_month_or_400(month: Optional[str]):
    if not month:
        today = org_today()
        return today.year, today.month
    try:
        return parse_month(month)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# --- API Endpoints ---


@router.get("/attendance")
def list_month_attendance(
    month: Optional[str] = Query(default=None, description="YYYY-MM, defaults to the current month"),
    session: Session = Depends(get_session),
    hr_user: dict = Depends(require_hr_role),
):
    """All attendance rows for a month (YYYY-MM), ordered by employee then day"""
    year, month_number = _parse_month_or_400(month)
    records = AttendanceService.list_month(year, month_number, session)
    return {"status": "success", "month": f"{year:04d}-{month_number:02d}", "data": records}


@router.put("/attendance/mark")
def mark_attendance(
    request: MarkAttendanceRequest,
    session: Session = Depends(get_session),
    hr_user: dict = Depends(require_hr_role),
):
    """HR endpoint to set an employee's status for a day"""
    try:
        record = AttendanceService.mark_status(
            employee_id=request.employee_id,
            day=request.date,
            status=request.status,
            session=session,
            actor_id=hr_user["uid"],
        )
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update attendance.",
        )

    return {"status": "success", "data": record, "message": "Attendance updated"}


@router.get("/attendance/export")
def export_month_attendance(
    month: Optional[str] = Query(default=None, description="YYYY-MM, defaults to the current month"),
    session: Session = Depends(get_session),
    hr_user: dict = Depends(require_hr_role),
    employees: List[Dict[str, str]] = Depends(get_employee_directory),
):
    """Monthly attendance sheet as CSV"""
    year, month_number = _parse_month_or_400(month)
    records = AttendanceService.list_month(year, month_number, session)
    content = AttendanceService.month_csv(year, month_number, records, employees)

    logger.info(f"[ATTENDANCE] {hr_user.get('email')} exported attendance for {year:04d}-{month_number:02d}")
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="attendance-{year:04d}-{month_number:02d}.csv"'},
    )
