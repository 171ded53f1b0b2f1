"""
Classroom data model.

Plain dataclasses shared by the in-memory and Postgres repositories.
Timestamps are ISO-8601 UTC strings, identifiers are opaque UUID text.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SCOPE_KINDS = frozenset({"course", "unit", "lesson", "assignment", "submission"})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@dataclass
class Organization:
    id: str
    name: str
    domain: Optional[str] = None
    logo: Optional[str] = None
    subscription_status: str = "trial"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class User:
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    organization_id: Optional[str] = None
    role: str = "student"
    is_active: bool = True
    xp_points: int = 0
    current_streak: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Course:
    id: str
    title: str
    description: Optional[str] = None
    subject: Optional[str] = None
    organization_id: Optional[str] = None
    teacher_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class CourseUnit:
    id: str
    title: str
    course_id: str
    description: Optional[str] = None
    order_index: int = 0
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Lesson:
    id: str
    title: str
    unit_id: str
    content: Optional[str] = None
    order_index: int = 0
    xp_reward: int = 10
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class CourseEnrollment:
    id: str
    course_id: str
    student_id: str
    enrolled_at: Optional[str] = None
    completion_percentage: int = 0
    is_active: bool = True


@dataclass
class Assignment:
    id: str
    title: str
    course_id: str
    teacher_id: str
    description: Optional[str] = None
    unit_id: Optional[str] = None
    due_date: Optional[str] = None
    total_points: int = 100
    status: str = "draft"
    xp_reward: int = 20
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class AssignmentSubmission:
    id: str
    assignment_id: str
    student_id: str
    content: Optional[str] = None
    status: str = "pending"
    score: Optional[int] = None
    feedback: Optional[str] = None
    submitted_at: Optional[str] = None
    graded_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class StudentProgress:
    id: str
    student_id: str
    lesson_id: str
    completed: bool = False
    completed_at: Optional[str] = None
    time_spent: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class AnalyticsEvent:
    id: str
    event_type: str
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    event_data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class Scope:
    """Owning organization (and teacher) of an entity, resolved by join.

    `teacher_id` is the course teacher for courses, units and lessons, and
    the assignment teacher for assignments and submissions.
    """

    organization_id: Optional[str]
    teacher_id: Optional[str] = None
