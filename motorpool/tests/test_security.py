"""
Security Tests.

Token validation, role guards and the shared error body format.
"""

import pytest
from datetime import timedelta

from motorpool.app.core.jwt import create_access_token
from motorpool.app.models.enums import UserRole
from motorpool.tests.factories import auth_headers, make_user


def _assert_error_body(body):
    assert set(body) == {"error_code", "message", "details"}


@pytest.mark.asyncio
async def test_unknown_route_uses_error_format(client):
    response = await client.get("/nowhere")
    
    assert response.status_code == 404
    _assert_error_body(response.json())
    assert response.json()["error_code"] == "ERR_NOT_FOUND"


@pytest.mark.asyncio
async def test_missing_token_rejected(client):
    response = await client.get("/queue")
    
    assert response.status_code in (401, 403)
    _assert_error_body(response.json())


@pytest.mark.asyncio
async def test_garbage_token_rejected(client, people):
    response = await client.get("/queue", headers={"Authorization": "Bearer not-a-jwt"})
    
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_expired_token_rejected(client, people):
    admin = people["admin"]
    token = create_access_token(
        {"sub": admin.username, "user_id": admin.id, "role": admin.role.value},
        expires_delta=timedelta(minutes=-5)
    )
    
    response = await client.get("/queue", headers={"Authorization": f"Bearer {token}"})
    
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_deleted_user_rejected(client, people):
    token = create_access_token({"sub": "ghost", "user_id": 9999, "role": "ADMIN"})
    
    response = await client.get("/queue", headers={"Authorization": f"Bearer {token}"})
    
    assert response.status_code == 401
    assert response.json()["message"] == "User not found"


@pytest.mark.asyncio
async def test_inactive_user_is_rejected(client, db_session):
    user = await make_user(db_session, "retired", UserRole.ADMIN, is_active=False)
    await db_session.commit()
    
    response = await client.get("/queue", headers=auth_headers(user))
    
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"


@pytest.mark.asyncio
async def test_role_guards(client, people):
    requester = auth_headers(people["requester"])
    driver = auth_headers(people["alice_account"])
    
    for method, path in [
        ("get", "/queue"),
        ("post", "/queue/renumber"),
        ("get", "/drivers"),
        ("post", "/ops/reset-drivers"),
        ("get", "/bookings"),
    ]:
        response = await client.request(method.upper(), path, headers=requester)
        assert response.status_code == 403, path
        assert response.json()["error_code"] == "ERR_FORBIDDEN"
    
    response = await client.post(
        "/bookings",
        json={"purpose": "Errand", "startAt": "2024-03-04T09:00:00"},
        headers=driver,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_role_is_read_from_the_database(client, db_session, people):
    # Token still claims ADMIN after the account was downgraded
    user = people["admin"]
    headers = auth_headers(user)
    user.role = UserRole.REQUESTER
    db_session.add(user)
    await db_session.commit()
    
    response = await client.get("/queue", headers=headers)
    
    assert response.status_code == 403
