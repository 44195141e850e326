"""Attendance statistics API router."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.auth.dependencies import get_current_user
from coaching.auth.rbac import require_roles
from coaching.auth.schemas import CurrentUser
from coaching.core.clock import Clock, get_clock
from coaching.core.exceptions import ServiceError
from coaching.db.session import get_db

from . import service
from .schemas import BatchStats, OverviewResponse, StudentStats, TeacherDashboardResponse, TeacherStats

router = APIRouter(prefix="/api/v1/statistics", tags=["statistics"])


@router.get("/students/{student_id}", response_model=StudentStats)
async def get_student_statistics(
    student_id: UUID,
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_student_statistics(
            db, current_user.id, current_user.role, student_id, batch_id, start_date, end_date
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/batches/{batch_id}", response_model=BatchStats)
async def get_batch_statistics(
    batch_id: UUID,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    try:
        return await service.get_batch_statistics(db, current_user.id, current_user.role, batch_id, month, year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/teachers/{teacher_id}", response_model=TeacherStats)
async def get_teacher_statistics(
    teacher_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    try:
        return await service.get_teacher_statistics(
            db, current_user.id, current_user.role, teacher_id, start_date, end_date
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/overview", response_model=OverviewResponse)
async def get_overview(
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    """Overall and per-batch figures; per-teacher rows for admins only."""
    try:
        return await service.get_overview(db, current_user.id, current_user.role, batch_id, start_date, end_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/teacher-dashboard", response_model=TeacherDashboardResponse)
async def get_teacher_dashboard(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles("TEACHER")),
):
    try:
        return await service.compute_teacher_dashboard(db, current_user.id, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
