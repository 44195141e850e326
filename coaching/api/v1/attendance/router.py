"""Attendance API router."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.auth.dependencies import get_current_user
from coaching.auth.rbac import require_roles
from coaching.auth.schemas import CurrentUser
from coaching.core.clock import Clock, get_clock
from coaching.core.events import EventBus, get_event_bus
from coaching.core.exceptions import ServiceError
from coaching.db.session import get_db

from . import export, service
from .schemas import (
    AttendanceCreate,
    AttendanceListResponse,
    AttendanceRecordResponse,
    AttendanceUpdate,
    StudentStatusUpdate,
    TodayAttendanceResponse,
)

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


# ----- Mark -----
@router.post(
    "",
    response_model=AttendanceRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def mark_attendance(
    payload: AttendanceCreate,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    """Mark a batch's attendance for one day. Admin: any batch; Teacher: own batches."""
    try:
        return await service.create_attendance(db, bus, current_user.id, current_user.role, payload, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


# ----- Read -----
@router.get("", response_model=AttendanceListResponse)
async def list_attendance(
    batch_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=service.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Records visible to the caller, newest first."""
    try:
        return await service.list_attendance(
            db,
            current_user.id,
            current_user.role,
            clock(),
            batch_id=batch_id,
            student_id=student_id,
            start_date=start_date,
            end_date=end_date,
            month=month,
            year=year,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/today", response_model=TodayAttendanceResponse)
async def get_today_attendance(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    """Records marked today and batches scheduled today that are still pending."""
    try:
        return await service.get_today_overview(db, current_user.id, current_user.role, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/date/{on_date}", response_model=List[AttendanceRecordResponse])
async def get_attendance_for_date(
    on_date: date,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.list_for_date(db, current_user.id, current_user.role, on_date, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/batch/{batch_id}", response_model=AttendanceListResponse)
async def get_batch_attendance(
    batch_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=service.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.list_for_batch(
            db,
            current_user.id,
            current_user.role,
            batch_id,
            clock(),
            start_date=start_date,
            end_date=end_date,
            month=month,
            year=year,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/batch/{batch_id}/export")
async def export_batch_register(
    batch_id: UUID,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    """Monthly attendance register as an .xlsx download."""
    try:
        content = await export.build_attendance_register(
            db, current_user.id, current_user.role, batch_id, month, year
        )
        return Response(
            content=content,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=attendance_{year}_{month:02d}.xlsx"},
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/student/{student_id}", response_model=AttendanceListResponse)
async def get_student_attendance(
    student_id: UUID,
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=service.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    """A student's attendance history. Students: self; parents: own children."""
    try:
        return await service.list_for_student(
            db,
            current_user.id,
            current_user.role,
            student_id,
            clock(),
            batch_id=batch_id,
            start_date=start_date,
            end_date=end_date,
            month=month,
            year=year,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{record_id}", response_model=AttendanceRecordResponse)
async def get_attendance(
    record_id: UUID,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_attendance(db, current_user.id, current_user.role, record_id, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


# ----- Edit -----
@router.put("/{record_id}", response_model=AttendanceRecordResponse)
async def update_attendance(
    record_id: UUID,
    payload: AttendanceUpdate,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    """Bulk edit. Teachers: own records inside the edit window."""
    try:
        return await service.update_attendance(
            db, bus, current_user.id, current_user.role, record_id, payload, clock()
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{record_id}/students/{student_id}", response_model=AttendanceRecordResponse)
async def update_student_attendance(
    record_id: UUID,
    student_id: UUID,
    payload: StudentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    try:
        return await service.update_student_status(
            db, bus, current_user.id, current_user.role, record_id, student_id, payload, clock()
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attendance(
    record_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Admin only, inside the delete window."""
    try:
        await service.delete_attendance(db, bus, current_user.id, current_user.role, record_id, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
