"""Aggregate import for all API route modules."""

from . import (
    auth,
    users,
    admin,
    settings,
    courses,
    quizzes,
    enrollments,
    certificates,
    organizations,
    certificate_templates,
)

__all__ = [
    "auth",
    "users",
    "admin",
    "settings",
    "courses",
    "quizzes",
    "enrollments",
    "certificates",
    "organizations",
    "certificate_templates",
]
