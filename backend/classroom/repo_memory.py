"""
In-memory classroom repository.

Used by the test suite and as the offline fallback when no database DSN is
configured. Mirrors `DBClassroomRepo` semantics, including the non-unique
enrollment insert and the (student, lesson) progress upsert.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

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
    utc_now_iso,
)


class MemoryClassroomRepo:
    def __init__(self) -> None:
        self.organizations: Dict[str, Organization] = {}
        self.users: Dict[str, User] = {}
        self.courses: Dict[str, Course] = {}
        self.units: Dict[str, CourseUnit] = {}
        self.lessons: Dict[str, Lesson] = {}
        self.enrollments: List[CourseEnrollment] = []
        self.assignments: Dict[str, Assignment] = {}
        self.submissions: Dict[str, AssignmentSubmission] = {}
        # progress[(student_id, lesson_id)] = row
        self.progress: Dict[Tuple[str, str], StudentProgress] = {}
        self.events: List[AnalyticsEvent] = []

    # --- Users ---------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        user = self.users.get(user_id)
        return replace(user) if user else None

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
    ) -> User:
        now = utc_now_iso()
        if email:
            clash = next((u for u in self.users.values() if u.email == email and u.id != id), None)
            if clash is not None:
                raise ValueError("duplicate_email")
        existing = self.users.get(id)
        if existing is None:
            user = User(
                id=id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                profile_image_url=profile_image_url,
                organization_id=organization_id,
                role=role,
                created_at=now,
                updated_at=now,
            )
        else:
            user = replace(
                existing,
                email=email,
                first_name=first_name,
                last_name=last_name,
                profile_image_url=profile_image_url,
                organization_id=organization_id,
                role=role,
                updated_at=now,
            )
        self.users[id] = user
        return replace(user)

    def get_users_by_organization(self, organization_id: str) -> List[User]:
        return [replace(u) for u in self.users.values() if u.organization_id == organization_id]

    def update_user_role(self, user_id: str, role: str) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        user.role = role
        user.updated_at = utc_now_iso()
        return replace(user)

    def add_xp(self, user_id: str, amount: int) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        user.xp_points += int(amount)
        user.updated_at = utc_now_iso()
        return replace(user)

    # --- Organizations -------------------------------------------------------

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        return self.organizations.get(organization_id)

    def create_organization(
        self,
        *,
        name: str,
        domain: Optional[str] = None,
        logo: Optional[str] = None,
        subscription_status: str = "trial",
    ) -> Organization:
        now = utc_now_iso()
        org = Organization(
            id=str(uuid4()),
            name=name,
            domain=domain,
            logo=logo,
            subscription_status=subscription_status,
            created_at=now,
            updated_at=now,
        )
        self.organizations[org.id] = org
        return org

    def get_user_organization(self, user_id: str) -> Optional[Organization]:
        user = self.users.get(user_id)
        if user is None or not user.organization_id:
            return None
        return self.organizations.get(user.organization_id)

    # --- Courses -------------------------------------------------------------

    def get_course(self, course_id: str) -> Optional[Course]:
        return self.courses.get(course_id)

    def create_course(
        self,
        *,
        title: str,
        description: Optional[str],
        subject: Optional[str],
        organization_id: Optional[str],
        teacher_id: Optional[str],
    ) -> Course:
        now = utc_now_iso()
        course = Course(
            id=str(uuid4()),
            title=title,
            description=description,
            subject=subject,
            organization_id=organization_id,
            teacher_id=teacher_id,
            created_at=now,
            updated_at=now,
        )
        self.courses[course.id] = course
        return course

    def get_courses_by_teacher(self, teacher_id: str) -> List[Course]:
        return [c for c in self.courses.values() if c.teacher_id == teacher_id]

    def get_courses_by_organization(self, organization_id: str) -> List[Course]:
        return [c for c in self.courses.values() if c.organization_id == organization_id]

    def get_enrolled_courses(self, student_id: str) -> List[Course]:
        # One entry per enrollment row, like the SQL join.
        return [
            self.courses[e.course_id]
            for e in self.enrollments
            if e.student_id == student_id and e.course_id in self.courses
        ]

    # --- Units & lessons -----------------------------------------------------

    def create_course_unit(
        self, *, course_id: str, title: str, description: Optional[str], order_index: int
    ) -> CourseUnit:
        now = utc_now_iso()
        unit = CourseUnit(
            id=str(uuid4()),
            title=title,
            course_id=course_id,
            description=description,
            order_index=order_index,
            created_at=now,
            updated_at=now,
        )
        self.units[unit.id] = unit
        return unit

    def get_course_unit(self, unit_id: str) -> Optional[CourseUnit]:
        return self.units.get(unit_id)

    def get_course_units(self, course_id: str) -> List[CourseUnit]:
        items = [u for u in self.units.values() if u.course_id == course_id]
        return sorted(items, key=lambda u: u.order_index)

    def create_lesson(
        self, *, unit_id: str, title: str, content: Optional[str], order_index: int, xp_reward: int
    ) -> Lesson:
        now = utc_now_iso()
        lesson = Lesson(
            id=str(uuid4()),
            title=title,
            unit_id=unit_id,
            content=content,
            order_index=order_index,
            xp_reward=xp_reward,
            created_at=now,
            updated_at=now,
        )
        self.lessons[lesson.id] = lesson
        return lesson

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        return self.lessons.get(lesson_id)

    def get_lessons_by_unit(self, unit_id: str) -> List[Lesson]:
        items = [l for l in self.lessons.values() if l.unit_id == unit_id]
        return sorted(items, key=lambda l: l.order_index)

    # --- Assignments & submissions -------------------------------------------

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
    ) -> Assignment:
        now = utc_now_iso()
        assignment = Assignment(
            id=str(uuid4()),
            title=title,
            description=description,
            course_id=course_id,
            unit_id=unit_id,
            teacher_id=teacher_id,
            due_date=due_date,
            total_points=total_points,
            status=status,
            xp_reward=xp_reward,
            created_at=now,
            updated_at=now,
        )
        self.assignments[assignment.id] = assignment
        return assignment

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        return self.assignments.get(assignment_id)

    def get_assignments_by_teacher(self, teacher_id: str) -> List[Assignment]:
        return [a for a in self.assignments.values() if a.teacher_id == teacher_id]

    def get_assignments_by_course(self, course_id: str) -> List[Assignment]:
        return [a for a in self.assignments.values() if a.course_id == course_id]

    def get_pending_grading(self, teacher_id: str) -> List[AssignmentSubmission]:
        own = {a.id for a in self.assignments.values() if a.teacher_id == teacher_id}
        return [
            replace(s) for s in self.submissions.values() if s.assignment_id in own and s.status == "submitted"
        ]

    def create_submission(
        self,
        *,
        assignment_id: str,
        student_id: str,
        content: Optional[str],
        status: str,
        submitted_at: Optional[str],
    ) -> AssignmentSubmission:
        now = utc_now_iso()
        sub = AssignmentSubmission(
            id=str(uuid4()),
            assignment_id=assignment_id,
            student_id=student_id,
            content=content,
            status=status,
            submitted_at=submitted_at,
            created_at=now,
            updated_at=now,
        )
        self.submissions[sub.id] = sub
        return replace(sub)

    def get_submission(self, submission_id: str) -> Optional[AssignmentSubmission]:
        sub = self.submissions.get(submission_id)
        return replace(sub) if sub else None

    def grade_submission(
        self, submission_id: str, *, score: int, feedback: Optional[str]
    ) -> Optional[AssignmentSubmission]:
        sub = self.submissions.get(submission_id)
        if sub is None:
            return None
        now = utc_now_iso()
        sub.score = score
        sub.feedback = feedback
        sub.status = "graded"
        sub.graded_at = now
        sub.updated_at = now
        return replace(sub)

    def get_student_submissions(self, student_id: str) -> List[AssignmentSubmission]:
        items = [replace(s) for s in self.submissions.values() if s.student_id == student_id]
        return sorted(items, key=lambda s: s.created_at or "", reverse=True)

    # --- Enrollments ---------------------------------------------------------

    def enroll_student(self, course_id: str, student_id: str) -> CourseEnrollment:
        enrollment = CourseEnrollment(
            id=str(uuid4()),
            course_id=course_id,
            student_id=student_id,
            enrolled_at=utc_now_iso(),
        )
        self.enrollments.append(enrollment)
        return enrollment

    def get_enrollments(self, course_id: str) -> List[CourseEnrollment]:
        return [e for e in self.enrollments if e.course_id == course_id]

    # --- Progress ------------------------------------------------------------

    def update_progress(
        self,
        *,
        student_id: str,
        lesson_id: str,
        completed: bool,
        completed_at: Optional[str],
        time_spent: int,
    ) -> StudentProgress:
        now = utc_now_iso()
        key = (student_id, lesson_id)
        row = self.progress.get(key)
        if row is None:
            row = StudentProgress(
                id=str(uuid4()),
                student_id=student_id,
                lesson_id=lesson_id,
                created_at=now,
            )
            self.progress[key] = row
        row.completed = completed
        row.completed_at = completed_at
        row.time_spent = time_spent
        row.updated_at = now
        return replace(row)

    def get_progress(self, student_id: str, lesson_id: str) -> Optional[StudentProgress]:
        row = self.progress.get((student_id, lesson_id))
        return replace(row) if row else None

    def get_student_progress(self, student_id: str, course_id: Optional[str] = None) -> List[StudentProgress]:
        rows = [replace(p) for p in self.progress.values() if p.student_id == student_id]
        if course_id is None:
            return rows
        result = []
        for row in rows:
            lesson = self.lessons.get(row.lesson_id)
            unit = self.units.get(lesson.unit_id) if lesson else None
            if unit is not None and unit.course_id == course_id:
                result.append(row)
        return result

    # --- Analytics -----------------------------------------------------------

    def log_event(
        self,
        *,
        user_id: Optional[str],
        organization_id: Optional[str],
        event_type: str,
        event_data: Dict[str, Any],
    ) -> AnalyticsEvent:
        event = AnalyticsEvent(
            id=str(uuid4()),
            event_type=event_type,
            user_id=user_id,
            organization_id=organization_id,
            event_data=dict(event_data or {}),
            timestamp=utc_now_iso(),
        )
        self.events.append(event)
        return event

    # --- Aggregates ----------------------------------------------------------

    def get_dashboard_stats(self, organization_id: str) -> Dict[str, Any]:
        members = [u for u in self.users.values() if u.organization_id == organization_id]
        course_ids = {c.id for c in self.courses.values() if c.organization_id == organization_id}
        percentages = [e.completion_percentage for e in self.enrollments if e.course_id in course_ids]
        avg = round(sum(percentages) / len(percentages), 2) if percentages else 0
        return {
            "totalUsers": len(members),
            "activeUsers": sum(1 for u in members if u.is_active),
            "totalCourses": len(course_ids),
            "avgEngagementRate": avg,
        }

    def get_teacher_insights(self, teacher_id: str) -> Dict[str, Any]:
        course_ids = {c.id for c in self.courses.values() if c.teacher_id == teacher_id}
        students = {e.student_id for e in self.enrollments if e.course_id in course_ids}
        return {
            "pendingGrading": len(self.get_pending_grading(teacher_id)),
            "totalCourses": len(course_ids),
            "totalStudents": len(students),
        }

    def get_student_insights(self, student_id: str) -> Dict[str, Any]:
        done = [p for p in self.progress.values() if p.student_id == student_id and p.completed]
        total_xp = sum(self.lessons[p.lesson_id].xp_reward for p in done if p.lesson_id in self.lessons)
        user = self.users.get(student_id)
        return {
            "completedLessons": len(done),
            "totalXP": total_xp,
            "currentStreak": user.current_streak if user else 0,
        }

    # --- Tenancy -------------------------------------------------------------

    def get_scope(self, kind: str, entity_id: str) -> Optional[Scope]:
        if kind == "course":
            course = self.courses.get(entity_id)
            if course is None:
                return None
            return Scope(organization_id=course.organization_id, teacher_id=course.teacher_id)
        if kind == "unit":
            unit = self.units.get(entity_id)
            if unit is None:
                return None
            return self._course_scope(unit.course_id)
        if kind == "lesson":
            lesson = self.lessons.get(entity_id)
            if lesson is None:
                return None
            unit = self.units.get(lesson.unit_id)
            return self._course_scope(unit.course_id if unit else None)
        if kind == "assignment":
            assignment = self.assignments.get(entity_id)
            if assignment is None:
                return None
            return self._assignment_scope(assignment)
        if kind == "submission":
            sub = self.submissions.get(entity_id)
            if sub is None:
                return None
            assignment = self.assignments.get(sub.assignment_id)
            if assignment is None:
                return Scope(organization_id=None)
            return self._assignment_scope(assignment)
        raise ValueError(f"unknown scope kind: {kind}")

    def _course_scope(self, course_id: Optional[str]) -> Scope:
        course = self.courses.get(course_id) if course_id else None
        if course is None:
            return Scope(organization_id=None)
        return Scope(organization_id=course.organization_id, teacher_id=course.teacher_id)

    def _assignment_scope(self, assignment: Assignment) -> Scope:
        course = self.courses.get(assignment.course_id)
        return Scope(
            organization_id=course.organization_id if course else None,
            teacher_id=assignment.teacher_id,
        )
