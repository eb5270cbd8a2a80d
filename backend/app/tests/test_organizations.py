"""Tests for the organization portal: members, courses and certificate templates."""

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
from app.models import User
from app.crud import ensure_permissions_exist, create_user
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

    ids = {}
    async with TestSession() as session:
        await ensure_permissions_exist(session, ALL_PERMISSIONS)
        for name, email, role in [
            ("Owner", "owner@example.com", "instructor"),
            ("Colleague", "colleague@example.com", "student"),
            ("Outsider", "outsider@example.com", "student"),
        ]:
            user = await create_user(
                session,
                User(name=name, email=email, password_hash="secret123", role=role),
            )
            ids[email.split("@")[0]] = user.id

    return ids


async def _login(client, email):
    resp = await client.post("/login", json={"email": email, "password": "secret123"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


async def _create_org(client, headers, slug="acme"):
    resp = await client.post(
        "/organizations/",
        headers=headers,
        json={"name": "Acme Training", "slug": slug},
    )
    assert resp.status_code == 201
    return resp.json()


def test_organization_membership():
    async def run():
        ids = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            owner = await _login(client, "owner@example.com")
            colleague = await _login(client, "colleague@example.com")
            outsider = await _login(client, "outsider@example.com")

            org = await _create_org(client, owner)
            assert org["role"] == "owner"
            assert org["member_count"] == 1
            org_id = org["id"]

            resp = await client.post(
                "/organizations/",
                headers=outsider,
                json={"name": "Copycat", "slug": "acme"},
            )
            assert resp.status_code == 409
            assert resp.json()["code"] == "organization_slug_taken"

            resp = await client.get("/organizations/acme", headers=outsider)
            assert resp.status_code == 403
            assert resp.json()["code"] == "organization_not_member"

            resp = await client.post(
                f"/organizations/{org_id}/members",
                headers=owner,
                json={"user_id": ids["colleague"]},
            )
            assert resp.status_code == 201
            assert resp.json()["role"] == "member"

            resp = await client.post(
                f"/organizations/{org_id}/members",
                headers=owner,
                json={"user_id": ids["colleague"]},
            )
            assert resp.status_code == 409
            assert resp.json()["code"] == "organization_duplicate_member"

            resp = await client.post(
                f"/organizations/{org_id}/members",
                headers=owner,
                json={"user_id": 9999},
            )
            assert resp.status_code == 404

            # Plain members cannot manage membership
            resp = await client.post(
                f"/organizations/{org_id}/members",
                headers=colleague,
                json={"user_id": ids["outsider"]},
            )
            assert resp.status_code == 403
            assert resp.json()["code"] == "organization_role_required"

            resp = await client.get("/organizations/my", headers=colleague)
            assert [(o["slug"], o["role"]) for o in resp.json()] == [("acme", "member")]

            resp = await client.get(f"/organizations/{org_id}/members", headers=colleague)
            assert [m["email"] for m in resp.json()] == [
                "owner@example.com",
                "colleague@example.com",
            ]

            # The only owner can be neither demoted nor removed
            resp = await client.patch(
                f"/organizations/{org_id}/members/{ids['owner']}",
                headers=owner,
                json={"role": "member"},
            )
            assert resp.status_code == 403
            assert resp.json()["code"] == "organization_last_owner"
            resp = await client.delete(
                f"/organizations/{org_id}/members/{ids['owner']}", headers=owner
            )
            assert resp.status_code == 403

            # Once a second owner exists the first may step down
            resp = await client.patch(
                f"/organizations/{org_id}/members/{ids['colleague']}",
                headers=owner,
                json={"role": "owner"},
            )
            assert resp.status_code == 200
            resp = await client.patch(
                f"/organizations/{org_id}/members/{ids['owner']}",
                headers=owner,
                json={"role": "member"},
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "member"

            resp = await client.patch(
                f"/organizations/{org_id}",
                headers=colleague,
                json={"description": "Corporate training"},
            )
            assert resp.status_code == 200
            assert resp.json()["description"] == "Corporate training"

    asyncio.run(run())


def test_organization_courses():
    async def run():
        ids = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            owner = await _login(client, "owner@example.com")
            colleague = await _login(client, "colleague@example.com")
            outsider = await _login(client, "outsider@example.com")
            org_id = (await _create_org(client, owner))["id"]
            await client.post(
                f"/organizations/{org_id}/members",
                headers=owner,
                json={"user_id": ids["colleague"]},
            )

            resp = await client.post(
                f"/organizations/{org_id}/courses",
                headers=owner,
                json={
                    "title": "Onboarding",
                    "slug": "acme-onboarding",
                    "description": "Everything new starters need to know.",
                    "short_description": "New starter training.",
                    "category": "Internal",
                },
            )
            assert resp.status_code == 201
            course = resp.json()
            assert course["organization_id"] == org_id
            assert course["is_published"] is False

            # Drafts are listed for members but hidden from the public catalog
            resp = await client.get(f"/organizations/{org_id}/courses", headers=colleague)
            assert [c["slug"] for c in resp.json()] == ["acme-onboarding"]
            resp = await client.get("/courses/")
            assert resp.json()["total"] == 0

            resp = await client.get(f"/organizations/{org_id}/courses", headers=outsider)
            assert resp.status_code == 403

            # Members author content through the course endpoints
            resp = await client.post(
                f"/courses/id/{course['id']}/modules",
                headers=colleague,
                json={"title": "Welcome", "order": 1},
            )
            assert resp.status_code == 201
            resp = await client.post(
                f"/courses/id/{course['id']}/modules",
                headers=outsider,
                json={"title": "Intrusion", "order": 2},
            )
            assert resp.status_code == 403

            resp = await client.patch(
                f"/organizations/{org_id}/courses/{course['id']}",
                headers=colleague,
                json={"is_published": True},
            )
            assert resp.status_code == 200
            assert resp.json()["is_published"] is True

            resp = await client.get(
                f"/organizations/{org_id}/courses/{course['id']}", headers=colleague
            )
            assert resp.status_code == 200
            assert [m["title"] for m in resp.json()["modules"]] == ["Welcome"]

            resp = await client.post(f"/enrollments/course/{course['id']}", headers=outsider)
            assert resp.status_code == 201

            resp = await client.get(
                f"/organizations/{org_id}/courses/{course['id']}/enrollments",
                headers=owner,
            )
            assert [e["user"]["email"] for e in resp.json()] == ["outsider@example.com"]

            resp = await client.get(
                f"/organizations/{org_id}/courses/{course['id']}/analytics",
                headers=owner,
            )
            analytics = resp.json()
            assert analytics["total_enrollments"] == 1
            assert analytics["not_started_count"] == 1
            assert analytics["completion_rate"] == 0

            # Another organization's course is not reachable through this one
            other_org = (await _create_org(client, outsider, slug="other"))["id"]
            resp = await client.get(
                f"/organizations/{other_org}/courses/{course['id']}", headers=outsider
            )
            assert resp.status_code == 404

            # Deleting the organization keeps its courses
            resp = await client.delete(f"/organizations/{org_id}", headers=owner)
            assert resp.status_code == 204
            resp = await client.get("/courses/acme-onboarding")
            assert resp.status_code == 200
            assert resp.json()["organization_id"] is None

    asyncio.run(run())


def test_certificate_templates():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            owner = await _login(client, "owner@example.com")
            outsider = await _login(client, "outsider@example.com")
            org_id = (await _create_org(client, owner))["id"]
            base = f"/organizations/{org_id}/certificate-templates"

            resp = await client.get(f"{base}/default", headers=owner)
            assert resp.status_code == 200
            assert resp.json() is None

            resp = await client.post(
                f"{base}/",
                headers=owner,
                json={"name": "Classic", "template_config": {"color": "navy"}},
            )
            assert resp.status_code == 201
            classic = resp.json()

            # With nothing flagged the oldest template is the default
            resp = await client.get(f"{base}/default", headers=owner)
            assert resp.json()["id"] == classic["id"]

            resp = await client.post(
                f"{base}/",
                headers=owner,
                json={
                    "name": "Modern",
                    "template_config": {"color": "teal"},
                    "is_default": True,
                },
            )
            modern = resp.json()
            assert modern["is_default"] is True

            resp = await client.post(f"{base}/{classic['id']}/set-default", headers=owner)
            assert resp.json()["is_default"] is True
            resp = await client.get(f"{base}/", headers=owner)
            flags = {t["name"]: t["is_default"] for t in resp.json()}
            assert flags == {"Classic": True, "Modern": False}
            assert resp.json()[0]["name"] == "Classic"

            resp = await client.get(f"{base}/", headers=outsider)
            assert resp.status_code == 403

            # Certificates for the organization's courses use the default design
            resp = await client.post(
                f"/organizations/{org_id}/courses",
                headers=owner,
                json={
                    "title": "Compliance",
                    "slug": "acme-compliance",
                    "description": "Annual compliance refresher course.",
                    "short_description": "Compliance refresher.",
                    "category": "Internal",
                    "is_published": True,
                },
            )
            course_id = resp.json()["id"]
            resp = await client.post(
                f"/courses/id/{course_id}/modules",
                headers=owner,
                json={"title": "Rules", "order": 1},
            )
            resp = await client.post(
                f"/courses/modules/{resp.json()['id']}/lessons",
                headers=owner,
                json={"title": "The rules", "video_duration": 60, "order": 1},
            )
            lesson_id = resp.json()["id"]
            resp = await client.post(f"/enrollments/course/{course_id}", headers=outsider)
            enrollment_id = resp.json()["id"]
            resp = await client.patch(
                f"/enrollments/{enrollment_id}/lessons/{lesson_id}/progress",
                headers=outsider,
                json={"watched_seconds": 60},
            )
            assert resp.json()["certificate"]["template_id"] == classic["id"]

            resp = await client.delete(f"{base}/{modern['id']}", headers=owner)
            assert resp.status_code == 204
            resp = await client.get(f"{base}/{modern['id']}", headers=owner)
            assert resp.status_code == 404

    asyncio.run(run())
