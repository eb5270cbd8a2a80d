"""Convenience imports for all schema classes used by the API."""

from .user import (
    UserCreate,
    UserResponse,
    UserMeResponse,
    UserLogin,
    UserUpdate,
    UserList,
    UserStats,
    ProfileUpdate,
    TokenPair,
    RefreshRequest,
)
from .settings import SettingsRead, SettingsUpdate
from .course import (
    CourseCreate,
    CourseUpdate,
    CourseRead,
    CourseSummary,
    CourseDetail,
    CourseList,
    NamedCount,
    ModuleCreate,
    ModuleUpdate,
    ModuleRead,
    ModuleDetail,
    LessonCreate,
    LessonUpdate,
    LessonRead,
    ReorderModules,
    ReorderLessons,
)
from .quiz import (
    QuizCreate,
    QuizUpdate,
    QuizRead,
    QuizDetail,
    LearnerQuiz,
    QuestionCreate,
    QuestionUpdate,
    QuestionRead,
    QuizSubmission,
    AttemptRead,
    AttemptResult,
)
from .certificate import (
    CertificateRead,
    CertificatePdfUpdate,
    CertificateVerification,
)
from .enrollment import (
    ProgressUpdate,
    LessonProgressRead,
    EnrollmentRead,
    EnrollmentWithCourse,
    EnrollmentDetail,
    EnrollmentCheck,
    ProgressResult,
    CourseEnrollmentRead,
    EnrollmentStatusUpdate,
)
from .organization import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationRead,
    MemberAdd,
    MemberRoleUpdate,
    MemberRead,
    CertificateTemplateCreate,
    CertificateTemplateUpdate,
    CertificateTemplateRead,
    CourseAnalytics,
)

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserMeResponse",
    "UserLogin",
    "UserUpdate",
    "UserList",
    "UserStats",
    "ProfileUpdate",
    "TokenPair",
    "RefreshRequest",
    "SettingsRead",
    "SettingsUpdate",
    "CourseCreate",
    "CourseUpdate",
    "CourseRead",
    "CourseSummary",
    "CourseDetail",
    "CourseList",
    "NamedCount",
    "ModuleCreate",
    "ModuleUpdate",
    "ModuleRead",
    "ModuleDetail",
    "LessonCreate",
    "LessonUpdate",
    "LessonRead",
    "ReorderModules",
    "ReorderLessons",
    "QuizCreate",
    "QuizUpdate",
    "QuizRead",
    "QuizDetail",
    "LearnerQuiz",
    "QuestionCreate",
    "QuestionUpdate",
    "QuestionRead",
    "QuizSubmission",
    "AttemptRead",
    "AttemptResult",
    "CertificateRead",
    "CertificatePdfUpdate",
    "CertificateVerification",
    "ProgressUpdate",
    "LessonProgressRead",
    "EnrollmentRead",
    "EnrollmentWithCourse",
    "EnrollmentDetail",
    "EnrollmentCheck",
    "ProgressResult",
    "CourseEnrollmentRead",
    "EnrollmentStatusUpdate",
    "OrganizationCreate",
    "OrganizationUpdate",
    "OrganizationRead",
    "MemberAdd",
    "MemberRoleUpdate",
    "MemberRead",
    "CertificateTemplateCreate",
    "CertificateTemplateUpdate",
    "CertificateTemplateRead",
    "CourseAnalytics",
]
