"""Repository port for the classroom context.

Both `MemoryClassroomRepo` and `DBClassroomRepo` satisfy this protocol. Reads
that may miss return `None`; persistence errors propagate to the caller.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .models import (
    AnalyticsEvent,
    Assignment,
    AssignmentSubmission,
    Course,
    CourseEnrollment,
    CourseUnit,
    Lesson,
    Organization,
    Scope,
    StudentProgress,
    User,
)


class ClassroomRepoProtocol(Protocol):
    # Users
    def get_user(self, user_id: str) -> Optional[User]: ...

    def upsert_user(
        self,
        *,
        id: str,
        email: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        profile_image_url: Optional[str],
        organization_id: Optional[str],
        role: str,
    ) -> User: ...

    def get_users_by_organization(self, organization_id: str) -> List[User]: ...

    def update_user_role(self, user_id: str, role: str) -> Optional[User]: ...

    def add_xp(self, user_id: str, amount: int) -> Optional[User]: ...

    # Organizations
    def get_organization(self, organization_id: str) -> Optional[Organization]: ...

    def create_organization(
        self,
        *,
        name: str,
        domain: Optional[str] = None,
        logo: Optional[str] = None,
        subscription_status: str = "trial",
    ) -> Organization: ...

    def get_user_organization(self, user_id: str) -> Optional[Organization]: ...

    # Courses
    def get_course(self, course_id: str) -> Optional[Course]: ...

    def create_course(
        self,
        *,
        title: str,
        description: Optional[str],
        subject: Optional[str],
        organization_id: Optional[str],
        teacher_id: Optional[str],
    ) -> Course: ...

    def get_courses_by_teacher(self, teacher_id: str) -> List[Course]: ...

    def get_courses_by_organization(self, organization_id: str) -> List[Course]: ...

    def get_enrolled_courses(self, student_id: str) -> List[Course]: ...

    # Units and lessons
    def create_course_unit(
        self, *, course_id: str, title: str, description: Optional[str], order_index: int
    ) -> CourseUnit: ...

    def get_course_unit(self, unit_id: str) -> Optional[CourseUnit]: ...

    def get_course_units(self, course_id: str) -> List[CourseUnit]: ...

    def create_lesson(
        self, *, unit_id: str, title: str, content: Optional[str], order_index: int, xp_reward: int
    ) -> Lesson: ...

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]: ...

    def get_lessons_by_unit(self, unit_id: str) -> List[Lesson]: ...

    # Assignments and submissions
    def create_assignment(
        self,
        *,
        title: str,
        description: Optional[str],
        course_id: str,
        unit_id: Optional[str],
        teacher_id: str,
        due_date: Optional[str],
        total_points: int,
        status: str,
        xp_reward: int,
    ) -> Assignment: ...

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]: ...

    def get_assignments_by_teacher(self, teacher_id: str) -> List[Assignment]: ...

    def get_assignments_by_course(self, course_id: str) -> List[Assignment]: ...

    def get_pending_grading(self, teacher_id: str) -> List[AssignmentSubmission]: ...

    def create_submission(
        self,
        *,
        assignment_id: str,
        student_id: str,
        content: Optional[str],
        status: str,
        submitted_at: Optional[str],
    ) -> AssignmentSubmission: ...

    def get_submission(self, submission_id: str) -> Optional[AssignmentSubmission]: ...

    def grade_submission(
        self, submission_id: str, *, score: int, feedback: Optional[str]
    ) -> Optional[AssignmentSubmission]: ...

    def get_student_submissions(self, student_id: str) -> List[AssignmentSubmission]: ...

    # Enrollments
    def enroll_student(self, course_id: str, student_id: str) -> CourseEnrollment: ...

    def get_enrollments(self, course_id: str) -> List[CourseEnrollment]: ...

    # Progress
    def update_progress(
        self,
        *,
        student_id: str,
        lesson_id: str,
        completed: bool,
        completed_at: Optional[str],
        time_spent: int,
    ) -> StudentProgress: ...

    def get_progress(self, student_id: str, lesson_id: str) -> Optional[StudentProgress]: ...

    def get_student_progress(self, student_id: str, course_id: Optional[str] = None) -> List[StudentProgress]: ...

    # Analytics
    def log_event(
        self,
        *,
        user_id: Optional[str],
        organization_id: Optional[str],
        event_type: str,
        event_data: Dict[str, Any],
    ) -> AnalyticsEvent: ...

    # Aggregates
    def get_dashboard_stats(self, organization_id: str) -> Dict[str, Any]: ...

    def get_teacher_insights(self, teacher_id: str) -> Dict[str, Any]: ...

    def get_student_insights(self, student_id: str) -> Dict[str, Any]: ...

    # Tenancy
    def get_scope(self, kind: str, entity_id: str) -> Optional[Scope]: ...
