import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from shopfront.api.auth import unique_user_write
from shopfront.core.errors import Conflict
from shopfront.data.models import User
from shopfront.main import create_app

@pytest.mark.asyncio
async def test_register_login_and_profile(client):
    registered = await client.post(
        "/api/auth/customer/register",
        json={"username": "carol", "email": "carol@example.com", "password": "s3cret"},
    )
    assert registered.status_code == 201
    assert registered.json()["user"]["role"] == "customer"

    login = await client.post("/api/auth/customer/login", json={"username": "carol@example.com", "password": "s3cret"})
    assert login.status_code == 200
    token = login.json()["token"]

    profile = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert profile.status_code == 200
    assert profile.json()["username"] == "carol"

@pytest.mark.asyncio
async def test_duplicate_registration_conflicts(client):
    payload = {"username": "carol", "email": "carol@example.com", "password": "s3cret"}
    assert (await client.post("/api/auth/customer/register", json=payload)).status_code == 201

    again = await client.post("/api/auth/customer/register", json={**payload, "username": "carol2"})
    assert again.status_code == 409

@pytest.mark.asyncio
async def test_wrong_password_is_rejected(client):
    await client.post(
        "/api/auth/customer/register",
        json={"username": "carol", "email": "carol@example.com", "password": "s3cret"},
    )

    response = await client.post("/api/auth/customer/login", json={"username": "carol", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"

@pytest.mark.asyncio
async def test_admin_login_creates_admin_once(client):
    credentials = {"username": "admin", "password": "admin-pass"}

    first = await client.post("/api/auth/admin/login", json=credentials)
    second = await client.post("/api/auth/admin/login", json=credentials)

    assert first.status_code == 200
    assert first.json()["user"]["role"] == "admin"
    assert second.json()["user"]["id"] == first.json()["user"]["id"]

    stats = await client.get(
        "/api/orders/stats/summary", headers={"Authorization": f"Bearer {first.json()['token']}"}
    )
    assert stats.status_code == 200

@pytest.mark.asyncio
async def test_admin_login_with_wrong_password(client):
    response = await client.post("/api/auth/admin/login", json={"username": "admin", "password": "guess"})
    assert response.status_code == 401

@pytest.mark.asyncio
async def test_profile_requires_token(client):
    response = await client.get("/api/auth/profile")
    assert response.status_code == 401
    assert response.json() == {"error": "Access denied", "message": "No token provided"}

@pytest.mark.asyncio
async def test_unconfigured_admin_login_is_a_generic_500(settings, database, producer, cache):
    bare = settings.model_copy(update={"ADMIN_USERNAME": None, "ADMIN_PASSWORD": None})
    app = create_app(bare, database=database, producer=producer, cache=cache)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/auth/admin/login", json={"username": "admin", "password": "x"})

    assert response.status_code == 500
    assert response.json() == {"error": "Server error", "message": "An unexpected error occurred"}

async def register(client, username):
    response = await client.post(
        "/api/auth/customer/register",
        json={"username": username, "email": f"{username}@example.com", "password": "s3cret"},
    )
    return {"Authorization": f"Bearer {response.json()['token']}"}

@pytest.mark.asyncio
async def test_profile_update_changes_only_given_fields(client):
    headers = await register(client, "carol")

    response = await client.put("/api/auth/profile", json={"email": "carol@new.example.com"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["email"] == "carol@new.example.com"
    assert response.json()["username"] == "carol"
    profile = await client.get("/api/auth/profile", headers=headers)
    assert profile.json()["email"] == "carol@new.example.com"

    assert (await client.put("/api/auth/profile", json={}, headers=headers)).status_code == 400
    assert (await client.put("/api/auth/profile", json={"email": "x@example.com"})).status_code == 401

@pytest.mark.asyncio
async def test_profile_update_rejects_taken_username_or_email(client):
    await register(client, "dave")
    headers = await register(client, "carol")

    taken_email = await client.put("/api/auth/profile", json={"email": "dave@example.com"}, headers=headers)
    taken_name = await client.put("/api/auth/profile", json={"username": "dave"}, headers=headers)
    own_email = await client.put("/api/auth/profile", json={"email": "carol@example.com"}, headers=headers)

    assert taken_email.status_code == 409
    assert taken_name.status_code == 409
    assert own_email.status_code == 200

@pytest.mark.asyncio
async def test_logout_requires_a_token(client):
    headers = await register(client, "carol")

    response = await client.post("/api/auth/logout", headers=headers)
    assert response.status_code == 200
    assert "Logout successful" in response.json()["message"]

    assert (await client.post("/api/auth/logout")).status_code == 401

@pytest.mark.asyncio
async def test_unique_violation_at_commit_is_a_conflict(database, seed):
    await seed.user("carol")

    async with database.session() as session:
        with pytest.raises(Conflict):
            async with unique_user_write(session):
                session.add(User(username="carol", email="other@example.com", password="x"))

        # The session is usable again after the failed write.
        assert await session.scalar(select(func.count(User.id))) == 1
