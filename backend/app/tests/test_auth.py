"""Tests for registration, login and refresh token rotation."""

import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app.main import app
from app.database import get_session
from app.crud import ensure_permissions_exist, get_user_by_email, save_user
from app.acl import ALL_PERMISSIONS


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with TestSession() as session:
        await ensure_permissions_exist(session, ALL_PERMISSIONS)

    return TestSession


def test_first_user_becomes_admin():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post(
                "/register",
                json={"name": "Ada", "email": "ada@example.com", "password": "secret123"},
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "admin"

            resp = await client.post(
                "/register",
                json={"name": "Bob", "email": "bob@example.com", "password": "secret123"},
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "student"

            resp = await client.post(
                "/register",
                json={"name": "Bob", "email": "bob@example.com", "password": "other123"},
            )
            assert resp.status_code == 409
            assert resp.json()["detail"]["code"] == "auth_email_registered"

            resp = await client.post(
                "/register",
                json={"name": "C", "email": "not-an-email", "password": "x"},
            )
            assert resp.status_code == 400
            assert resp.json()["code"] == "validation_error"

            resp = await client.post(
                "/login", json={"email": "bob@example.com", "password": "secret123"}
            )
            assert resp.status_code == 200
            headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
            resp = await client.get("/users/me", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["email"] == "bob@example.com"

    asyncio.run(run())


def test_login_failures():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post(
                "/register",
                json={"name": "Ada", "email": "ada@example.com", "password": "secret123"},
            )
            resp = await client.post(
                "/login", json={"email": "ada@example.com", "password": "wrong-pass"}
            )
            assert resp.status_code == 401
            assert resp.json()["detail"]["code"] == "auth_invalid_credentials"

            resp = await client.post(
                "/token", data={"username": "ada@example.com", "password": "secret123"}
            )
            assert resp.status_code == 200
            assert resp.json()["token_type"] == "bearer"

            async with TestSession() as session:
                user = await get_user_by_email(session, "ada@example.com")
                user.is_active = False
                await save_user(session, user)

            resp = await client.post(
                "/login", json={"email": "ada@example.com", "password": "secret123"}
            )
            assert resp.status_code == 403
            assert resp.json()["detail"]["code"] == "auth_account_inactive"

    asyncio.run(run())


def test_refresh_tokens_rotate():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post(
                "/register",
                json={"name": "Ada", "email": "ada@example.com", "password": "secret123"},
            )
            resp = await client.post(
                "/login", json={"email": "ada@example.com", "password": "secret123"}
            )
            tokens = resp.json()

            # An access token is not accepted as a refresh token
            resp = await client.post(
                "/refresh", json={"refresh_token": tokens["access_token"]}
            )
            assert resp.status_code == 401

            resp = await client.post(
                "/refresh", json={"refresh_token": tokens["refresh_token"]}
            )
            assert resp.status_code == 200
            rotated = resp.json()
            assert rotated["refresh_token"] != tokens["refresh_token"]

            resp = await client.post(
                "/refresh", json={"refresh_token": tokens["refresh_token"]}
            )
            assert resp.status_code == 401
            assert resp.json()["detail"]["code"] == "auth_invalid_refresh"

            # A refresh token cannot be used as a bearer token
            resp = await client.get(
                "/users/me",
                headers={"Authorization": f"Bearer {rotated['refresh_token']}"},
            )
            assert resp.status_code == 401

            headers = {"Authorization": f"Bearer {rotated['access_token']}"}
            resp = await client.post("/logout", headers=headers)
            assert resp.status_code == 200
            resp = await client.post(
                "/refresh", json={"refresh_token": rotated["refresh_token"]}
            )
            assert resp.status_code == 401

    asyncio.run(run())


def test_registration_can_be_disabled():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post(
                "/register",
                json={"name": "Ada", "email": "ada@example.com", "password": "secret123"},
            )
            resp = await client.post(
                "/login", json={"email": "ada@example.com", "password": "secret123"}
            )
            headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
            resp = await client.put(
                "/settings/",
                headers=headers,
                json={"public_registration_disabled": True},
            )
            assert resp.status_code == 200

            resp = await client.post(
                "/register",
                json={"name": "Bob", "email": "bob@example.com", "password": "secret123"},
            )
            assert resp.status_code == 404

    asyncio.run(run())


def test_admin_password_reset_uses_the_same_rules():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post(
                "/register",
                json={"name": "Ada", "email": "ada@example.com", "password": "secret123"},
            )
            resp = await client.post(
                "/register",
                json={"name": "Bob", "email": "bob@example.com", "password": "secret123"},
            )
            bob_id = resp.json()["id"]
            resp = await client.post(
                "/login", json={"email": "ada@example.com", "password": "secret123"}
            )
            headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

            resp = await client.put(
                f"/admin/users/{bob_id}", headers=headers, json={"password": "x"}
            )
            assert resp.status_code == 400
            assert resp.json()["code"] == "validation_error"

            resp = await client.put(
                f"/admin/users/{bob_id}", headers=headers, json={"password": "newpass1"}
            )
            assert resp.status_code == 200
            resp = await client.post(
                "/login", json={"email": "bob@example.com", "password": "newpass1"}
            )
            assert resp.status_code == 200

    asyncio.run(run())
