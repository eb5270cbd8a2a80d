"""Access control list constants and helpers.

The API uses string permission names to authorize actions.  This module
defines all available permissions, the platform roles and the default
permissions for each role.  Having these values in one place makes it
easy to audit and update the security model.
"""

ROLE_STUDENT = "student"
ROLE_INSTRUCTOR = "instructor"
ROLE_ADMIN = "admin"

ALL_ROLES = [ROLE_STUDENT, ROLE_INSTRUCTOR, ROLE_ADMIN]

# Roles inside an organization
ORG_ROLE_OWNER = "owner"
ORG_ROLE_MEMBER = "member"

ORG_ROLES = [ORG_ROLE_OWNER, ORG_ROLE_MEMBER]

PERM_MANAGE_COURSES = "manage_courses"
PERM_VIEW_COURSE_ANALYTICS = "view_course_analytics"
PERM_MANAGE_USERS = "manage_users"
PERM_MANAGE_CERTIFICATES = "manage_certificates"
PERM_MANAGE_SETTINGS = "manage_settings"

ALL_PERMISSIONS = [
    PERM_MANAGE_COURSES,
    PERM_VIEW_COURSE_ANALYTICS,
    PERM_MANAGE_USERS,
    PERM_MANAGE_CERTIFICATES,
    PERM_MANAGE_SETTINGS,
]

ROLE_DEFAULT_PERMISSIONS = {
    ROLE_ADMIN: ALL_PERMISSIONS,
    ROLE_INSTRUCTOR: [
        PERM_MANAGE_COURSES,
        PERM_VIEW_COURSE_ANALYTICS,
    ],
    ROLE_STUDENT: [],
}


def get_default_permissions_for_role(role: str) -> list[str]:
    return ROLE_DEFAULT_PERMISSIONS.get(role, [])
