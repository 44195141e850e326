import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.auth.security import create_access_token, decode_access_token

from tests.factories import auth_headers, make_user


def test_access_token_round_trip() -> None:
    token = create_access_token(subject={"user_id": "abc", "role": "TEACHER"})
    payload = decode_access_token(token)
    assert payload["user_id"] == "abc"
    assert "exp" in payload


@pytest.mark.asyncio
async def test_garbage_token_is_unauthorized(client: AsyncClient) -> None:
    response = await client.get("/api/v1/attendance", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_unauthorized(client: AsyncClient, db_session: AsyncSession) -> None:
    teacher = await make_user(db_session, "TEACHER")
    token = create_access_token(subject={"user_id": str(teacher.id)}, expires_minutes=-1)
    response = await client.get("/api/v1/attendance", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_inactive_user_is_unauthorized(client: AsyncClient, db_session: AsyncSession) -> None:
    teacher = await make_user(db_session, "TEACHER", status="INACTIVE")
    response = await client.get("/api/v1/attendance", headers=auth_headers(teacher))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_role_is_read_from_stored_user(client: AsyncClient, db_session: AsyncSession) -> None:
    student = await make_user(db_session, "STUDENT")
    token = create_access_token(subject={"user_id": str(student.id), "role": "ADMIN"})
    response = await client.get(
        "/api/v1/statistics/overview", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_role_cannot_list_attendance(client: AsyncClient, db_session: AsyncSession) -> None:
    accountant = await make_user(db_session, "ACCOUNTANT")
    response = await client.get("/api/v1/attendance", headers=auth_headers(accountant))
    assert response.status_code == 403
