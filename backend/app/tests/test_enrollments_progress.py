"""Tests for enrolling, lesson progress rollup and certificate issuance."""

import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy import func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app.main import app
from app.database import get_session
from app.models import User, Certificate
from app.crud import (
    ensure_permissions_exist,
    create_user,
    issue_certificate_if_eligible,
)
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
        for name, email, role in [
            ("Admin", "admin@example.com", "admin"),
            ("Tutor", "tutor@example.com", "instructor"),
            ("Student", "student@example.com", "student"),
            ("Classmate", "classmate@example.com", "student"),
        ]:
            await create_user(
                session,
                User(name=name, email=email, password_hash="secret123", role=role),
            )

    return TestSession


async def _login(client, email):
    resp = await client.post("/login", json={"email": email, "password": "secret123"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


async def _create_course(client, headers, slug, lessons, published=True):
    """Create a course with one module holding lessons of the given durations."""
    resp = await client.post(
        "/courses/",
        headers=headers,
        json={
            "title": f"Course {slug}",
            "slug": slug,
            "description": "A course used by the progress tests.",
            "short_description": "Progress test course.",
            "category": "Testing",
            "is_published": published,
        },
    )
    assert resp.status_code == 201
    course_id = resp.json()["id"]
    resp = await client.post(
        f"/courses/id/{course_id}/modules",
        headers=headers,
        json={"title": "Only module", "order": 1},
    )
    module_id = resp.json()["id"]
    lesson_ids = []
    for order, duration in enumerate(lessons, start=1):
        resp = await client.post(
            f"/courses/modules/{module_id}/lessons",
            headers=headers,
            json={
                "title": f"Lesson {order}",
                "video_duration": duration,
                "order": order,
            },
        )
        assert resp.status_code == 201
        lesson_ids.append(resp.json()["id"])
    return course_id, lesson_ids


def test_enroll_rules():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            tutor = await _login(client, "tutor@example.com")
            student = await _login(client, "student@example.com")
            course_id, lessons = await _create_course(client, tutor, "intro", [100, 100])
            draft_id, _ = await _create_course(
                client, tutor, "draft", [100], published=False
            )

            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            assert resp.status_code == 201
            enrollment = resp.json()
            assert enrollment["progress"] == 0
            assert enrollment["status"] == "active"

            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            assert resp.status_code == 409

            resp = await client.post(f"/enrollments/course/{draft_id}", headers=student)
            assert resp.status_code == 400
            assert resp.json()["code"] == "course_not_published"

            resp = await client.post("/enrollments/course/9999", headers=student)
            assert resp.status_code == 404

            resp = await client.get(f"/enrollments/course/{course_id}/check", headers=student)
            assert resp.json() == {"is_enrolled": True}

            resp = await client.get(f"/enrollments/course/{course_id}", headers=student)
            assert resp.status_code == 200
            detail = resp.json()
            assert len(detail["lesson_progress"]) == 2
            assert detail["course"]["modules"][0]["lessons"][0]["id"] == lessons[0]

            resp = await client.get("/enrollments/", headers=student)
            assert [e["course"]["slug"] for e in resp.json()] == ["intro"]

            resp = await client.delete(f"/enrollments/course/{course_id}", headers=student)
            assert resp.status_code == 204
            resp = await client.get(f"/enrollments/course/{course_id}/check", headers=student)
            assert resp.json() == {"is_enrolled": False}

    asyncio.run(run())


def test_progress_rollup_and_certificate():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            tutor = await _login(client, "tutor@example.com")
            student = await _login(client, "student@example.com")
            course_id, (first, second) = await _create_course(
                client, tutor, "rollup", [600, 100]
            )
            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            enrollment_id = resp.json()["id"]
            url = f"/enrollments/{enrollment_id}/lessons/{{}}/progress"

            # 539 of 600 seconds is just under the 90% mark
            resp = await client.patch(
                url.format(first), headers=student, json={"watched_seconds": 539}
            )
            assert resp.status_code == 200
            data = resp.json()
            assert data["lesson_progress"]["completed"] is False
            assert data["enrollment"]["progress"] == 0

            resp = await client.patch(
                url.format(first), headers=student, json={"watched_seconds": 540}
            )
            data = resp.json()
            assert data["lesson_progress"]["completed"] is True
            assert data["enrollment"]["progress"] == 50.0
            assert data["certificate"] is None

            # Seeking backwards never undoes completion or watched time
            resp = await client.patch(
                url.format(first), headers=student, json={"watched_seconds": 10}
            )
            data = resp.json()
            assert data["lesson_progress"]["completed"] is True
            assert data["lesson_progress"]["watched_seconds"] == 540
            assert data["enrollment"]["progress"] == 50.0

            resp = await client.patch(
                url.format(second), headers=student, json={"watched_seconds": 95}
            )
            data = resp.json()
            assert data["enrollment"]["progress"] == 100.0
            assert data["enrollment"]["status"] == "completed"
            assert data["enrollment"]["completed_at"] is not None
            certificate = data["certificate"]
            assert certificate["unique_code"].startswith("4H")
            assert len(certificate["unique_code"]) == 14

            # Further pings return the same certificate
            completed_at = data["enrollment"]["completed_at"]
            resp = await client.patch(
                url.format(second), headers=student, json={"watched_seconds": 100}
            )
            data = resp.json()
            assert data["certificate"]["id"] == certificate["id"]
            assert data["enrollment"]["completed_at"] == completed_at

            async with TestSession() as session:
                again = await issue_certificate_if_eligible(session, enrollment_id)
                assert again.id == certificate["id"]
                result = await session.execute(
                    select(func.count()).select_from(Certificate)
                )
                assert result.scalar() == 1

            resp = await client.get(
                f"/enrollments/{enrollment_id}/lessons/{first}/progress", headers=student
            )
            assert resp.status_code == 200
            assert resp.json()["watched_seconds"] == 540

            resp = await client.get("/certificates/", headers=student)
            assert [c["unique_code"] for c in resp.json()] == [certificate["unique_code"]]

            resp = await client.get("/users/me/stats", headers=student)
            assert resp.json() == {
                "total_courses": 1,
                "completed_courses": 1,
                "in_progress_courses": 0,
                "total_certificates": 1,
                "total_watch_time": 640,
            }

            # Public verification needs no login
            resp = await client.get(f"/certificates/verify/{certificate['unique_code']}")
            assert resp.status_code == 200
            body = resp.json()
            assert body["valid"] is True
            assert body["certificate"]["recipient_name"] == "Student"
            assert body["certificate"]["course_name"] == "Course rollup"
            assert body["certificate"]["instructor_name"] == "Tutor"

            resp = await client.get("/certificates/verify/4HNOTAREALCODE")
            assert resp.json() == {"valid": False, "certificate": None}

    asyncio.run(run())


def test_progress_is_scoped_to_the_learner_and_course():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            tutor = await _login(client, "tutor@example.com")
            student = await _login(client, "student@example.com")
            classmate = await _login(client, "classmate@example.com")
            admin = await _login(client, "admin@example.com")
            course_id, (lesson,) = await _create_course(client, tutor, "scoped", [100])
            _, (foreign_lesson,) = await _create_course(client, tutor, "other", [100])

            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            enrollment_id = resp.json()["id"]

            resp = await client.patch(
                f"/enrollments/{enrollment_id}/lessons/{lesson}/progress",
                headers=classmate,
                json={"watched_seconds": 100},
            )
            assert resp.status_code == 404

            resp = await client.patch(
                f"/enrollments/{enrollment_id}/lessons/{foreign_lesson}/progress",
                headers=student,
                json={"watched_seconds": 100},
            )
            assert resp.status_code == 404
            assert resp.json()["code"] == "lesson_not_found"

            resp = await client.patch(
                f"/enrollments/{enrollment_id}/lessons/{lesson}/progress",
                headers=student,
                json={"watched_seconds": -5},
            )
            assert resp.status_code == 400

            resp = await client.patch(
                f"/admin/enrollments/{enrollment_id}/status",
                headers=admin,
                json={"status": "expired"},
            )
            assert resp.status_code == 200

            resp = await client.patch(
                f"/enrollments/{enrollment_id}/lessons/{lesson}/progress",
                headers=student,
                json={"watched_seconds": 100},
            )
            assert resp.status_code == 400
            assert resp.json()["code"] == "enrollment_expired"

    asyncio.run(run())


def test_lesson_without_video_completes_on_request():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            tutor = await _login(client, "tutor@example.com")
            student = await _login(client, "student@example.com")
            course_id, (reading,) = await _create_course(client, tutor, "reading", [None])
            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            enrollment_id = resp.json()["id"]
            url = f"/enrollments/{enrollment_id}/lessons/{reading}/progress"

            resp = await client.patch(url, headers=student, json={"watched_seconds": 30})
            assert resp.json()["lesson_progress"]["completed"] is False

            resp = await client.patch(
                url, headers=student, json={"watched_seconds": 0, "completed": True}
            )
            data = resp.json()
            assert data["lesson_progress"]["completed"] is True
            assert data["enrollment"]["status"] == "completed"
            assert data["certificate"] is not None

    asyncio.run(run())


def test_admin_certificate_management():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            tutor = await _login(client, "tutor@example.com")
            student = await _login(client, "student@example.com")
            classmate = await _login(client, "classmate@example.com")
            admin = await _login(client, "admin@example.com")
            course_id, _ = await _create_course(client, tutor, "forced", [100])
            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            enrollment_id = resp.json()["id"]

            # Forcing completion issues the certificate
            resp = await client.patch(
                f"/admin/enrollments/{enrollment_id}/status",
                headers=admin,
                json={"status": "completed"},
            )
            assert resp.status_code == 200
            resp = await client.get("/certificates/", headers=student)
            (certificate,) = resp.json()

            resp = await client.get(f"/certificates/{certificate['id']}", headers=classmate)
            assert resp.status_code == 403
            resp = await client.get(f"/certificates/{certificate['id']}", headers=admin)
            assert resp.status_code == 200

            resp = await client.patch(
                f"/certificates/{certificate['id']}/pdf",
                headers=student,
                json={"pdf_url": "https://cdn.example.com/c.pdf"},
            )
            assert resp.status_code == 403
            resp = await client.patch(
                f"/certificates/{certificate['id']}/pdf",
                headers=admin,
                json={"pdf_url": "https://cdn.example.com/c.pdf"},
            )
            assert resp.json()["pdf_url"] == "https://cdn.example.com/c.pdf"

            resp = await client.get(
                f"/admin/courses/{course_id}/enrollments", headers=admin
            )
            (row,) = resp.json()
            assert row["user"]["email"] == "student@example.com"
            assert row["certificate"]["id"] == certificate["id"]

            resp = await client.delete(f"/certificates/{certificate['id']}", headers=admin)
            assert resp.status_code == 204
            resp = await client.get("/certificates/", headers=student)
            assert resp.json() == []

    asyncio.run(run())


def test_completion_time_survives_status_reset():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            tutor = await _login(client, "tutor@example.com")
            student = await _login(client, "student@example.com")
            admin = await _login(client, "admin@example.com")
            course_id, (lesson,) = await _create_course(client, tutor, "reset", [100])
            resp = await client.post(f"/enrollments/course/{course_id}", headers=student)
            enrollment_id = resp.json()["id"]
            url = f"/enrollments/{enrollment_id}/lessons/{lesson}/progress"

            resp = await client.patch(url, headers=student, json={"watched_seconds": 100})
            completed_at = resp.json()["enrollment"]["completed_at"]
            assert completed_at is not None

            resp = await client.patch(
                f"/admin/enrollments/{enrollment_id}/status",
                headers=admin,
                json={"status": "active"},
            )
            assert resp.json()["status"] == "active"

            resp = await client.patch(url, headers=student, json={"watched_seconds": 100})
            data = resp.json()
            assert data["enrollment"]["status"] == "completed"
            assert data["enrollment"]["completed_at"] == completed_at

    asyncio.run(run())
