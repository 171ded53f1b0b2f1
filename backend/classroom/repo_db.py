"""
Postgres-backed classroom repository.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Column lists alias to dataclass field names so rows map 1:1 via `dict_row`.
- Timestamps are rendered to ISO strings in SQL for predictability across drivers.
- No cross-call transactions; each method is a single statement or small join.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging
import os

try:
    import psycopg
    from psycopg.rows import dict_row
    from psycopg.types.json import Json
    HAVE_PSYCOPG = True
except ImportError:  # pragma: no cover - optional in minimal dev setups
    psycopg = None  # type: ignore
    dict_row = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

from .models import (
    SCOPE_KINDS,
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

logger = logging.getLogger("amali.classroom.repo_db")


def _dsn() -> str:
    """Resolve the DSN for classroom data access."""
    candidates = [
        os.getenv("CLASSROOM_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBClassroomRepo")


def _ts(column: str, alias: Optional[str] = None) -> str:
    name = alias or column.split(".")[-1]
    return (
        f"case when {column} is null then null else "
        f"to_char({column} at time zone 'utc', 'YYYY-MM-DD\"T\"HH24:MI:SS.US\"+00:00\"') end as {name}"
    )


_ORG_COLUMNS = f"""
    o.id, o.name, o.domain, o.logo, o.subscription_status::text as subscription_status,
    {_ts("o.created_at")}, {_ts("o.updated_at")}
"""

_USER_COLUMNS = f"""
    u.id, u.email, u.first_name, u.last_name, u.profile_image_url, u.organization_id,
    u.role::text as role, u.is_active, u.xp_points, u.current_streak,
    {_ts("u.created_at")}, {_ts("u.updated_at")}
"""

_COURSE_COLUMNS = f"""
    c.id, c.title, c.description, c.subject, c.organization_id, c.teacher_id, c.is_active,
    {_ts("c.created_at")}, {_ts("c.updated_at")}
"""

_UNIT_COLUMNS = f"""
    cu.id, cu.title, cu.description, cu.course_id, cu.order_index, cu.is_active,
    {_ts("cu.created_at")}, {_ts("cu.updated_at")}
"""

_LESSON_COLUMNS = f"""
    l.id, l.title, l.content, l.unit_id, l.order_index, l.xp_reward, l.is_active,
    {_ts("l.created_at")}, {_ts("l.updated_at")}
"""

_ENROLLMENT_COLUMNS = f"""
    e.id, e.course_id, e.student_id, {_ts("e.enrolled_at")}, e.completion_percentage, e.is_active
"""

_ASSIGNMENT_COLUMNS = f"""
    a.id, a.title, a.description, a.course_id, a.unit_id, a.teacher_id, {_ts("a.due_date")},
    a.total_points, a.status::text as status, a.xp_reward,
    {_ts("a.created_at")}, {_ts("a.updated_at")}
"""

_SUBMISSION_COLUMNS = f"""
    s.id, s.assignment_id, s.student_id, s.content, s.status::text as status, s.score, s.feedback,
    {_ts("s.submitted_at")}, {_ts("s.graded_at")}, {_ts("s.created_at")}, {_ts("s.updated_at")}
"""

_PROGRESS_COLUMNS = f"""
    sp.id, sp.student_id, sp.lesson_id, sp.completed, {_ts("sp.completed_at")}, sp.time_spent,
    {_ts("sp.created_at")}, {_ts("sp.updated_at")}
"""

# Owning organization (and teacher) per entity kind, joined through to the course.
_SCOPE_SQL = {
    "course": "select c.organization_id, c.teacher_id from public.courses c where c.id = %s",
    "unit": (
        "select c.organization_id, c.teacher_id from public.course_units cu "
        "left join public.courses c on c.id = cu.course_id where cu.id = %s"
    ),
    "lesson": (
        "select c.organization_id, c.teacher_id from public.lessons l "
        "left join public.course_units cu on cu.id = l.unit_id "
        "left join public.courses c on c.id = cu.course_id where l.id = %s"
    ),
    "assignment": (
        "select c.organization_id, a.teacher_id from public.assignments a "
        "left join public.courses c on c.id = a.course_id where a.id = %s"
    ),
    "submission": (
        "select c.organization_id, a.teacher_id from public.assignment_submissions s "
        "left join public.assignments a on a.id = s.assignment_id "
        "left join public.courses c on c.id = a.course_id where s.id = %s"
    ),
}


class DBClassroomRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBClassroomRepo")
        self._dsn = dsn or _dsn()

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return list(cur.fetchall())

    # --- Users ---------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._fetchone(f"select {_USER_COLUMNS} from public.users u where u.id = %s", (user_id,))
        return User(**row) if row else None

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
        row = self._fetchone(
            f"""
            with upserted as (
              insert into public.users as u
                (id, email, first_name, last_name, profile_image_url, organization_id, role)
              values (%s, %s, %s, %s, %s, %s, %s::user_role)
              on conflict (id) do update set
                email = excluded.email,
                first_name = excluded.first_name,
                last_name = excluded.last_name,
                profile_image_url = excluded.profile_image_url,
                organization_id = excluded.organization_id,
                role = excluded.role,
                updated_at = now()
              returning *
            )
            select {_USER_COLUMNS} from upserted u
            """,
            (id, email, first_name, last_name, profile_image_url, organization_id, role),
        )
        return User(**row)

    def get_users_by_organization(self, organization_id: str) -> List[User]:
        rows = self._fetchall(
            f"select {_USER_COLUMNS} from public.users u where u.organization_id = %s order by u.created_at",
            (organization_id,),
        )
        return [User(**r) for r in rows]

    def update_user_role(self, user_id: str, role: str) -> Optional[User]:
        row = self._fetchone(
            f"""
            with updated as (
              update public.users set role = %s::user_role, updated_at = now() where id = %s returning *
            )
            select {_USER_COLUMNS} from updated u
            """,
            (role, user_id),
        )
        return User(**row) if row else None

    def add_xp(self, user_id: str, amount: int) -> Optional[User]:
        row = self._fetchone(
            f"""
            with updated as (
              update public.users set xp_points = xp_points + %s, updated_at = now() where id = %s returning *
            )
            select {_USER_COLUMNS} from updated u
            """,
            (int(amount), user_id),
        )
        return User(**row) if row else None

    # --- Organizations -------------------------------------------------------

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        row = self._fetchone(
            f"select {_ORG_COLUMNS} from public.organizations o where o.id = %s", (organization_id,)
        )
        return Organization(**row) if row else None

    def create_organization(
        self,
        *,
        name: str,
        domain: Optional[str] = None,
        logo: Optional[str] = None,
        subscription_status: str = "trial",
    ) -> Organization:
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.organizations (name, domain, logo, subscription_status)
              values (%s, %s, %s, %s::subscription_status) returning *
            )
            select {_ORG_COLUMNS} from inserted o
            """,
            (name, domain, logo, subscription_status),
        )
        return Organization(**row)

    def get_user_organization(self, user_id: str) -> Optional[Organization]:
        row = self._fetchone(
            f"""
            select {_ORG_COLUMNS} from public.organizations o
            join public.users u on u.organization_id = o.id
            where u.id = %s
            """,
            (user_id,),
        )
        return Organization(**row) if row else None

    # --- Courses -------------------------------------------------------------

    def get_course(self, course_id: str) -> Optional[Course]:
        row = self._fetchone(f"select {_COURSE_COLUMNS} from public.courses c where c.id = %s", (course_id,))
        return Course(**row) if row else None

    def create_course(
        self,
        *,
        title: str,
        description: Optional[str],
        subject: Optional[str],
        organization_id: Optional[str],
        teacher_id: Optional[str],
    ) -> Course:
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.courses (title, description, subject, organization_id, teacher_id)
              values (%s, %s, %s, %s, %s) returning *
            )
            select {_COURSE_COLUMNS} from inserted c
            """,
            (title, description, subject, organization_id, teacher_id),
        )
        return Course(**row)

    def get_courses_by_teacher(self, teacher_id: str) -> List[Course]:
        rows = self._fetchall(
            f"select {_COURSE_COLUMNS} from public.courses c where c.teacher_id = %s order by c.created_at",
            (teacher_id,),
        )
        return [Course(**r) for r in rows]

    def get_courses_by_organization(self, organization_id: str) -> List[Course]:
        rows = self._fetchall(
            f"select {_COURSE_COLUMNS} from public.courses c where c.organization_id = %s order by c.created_at",
            (organization_id,),
        )
        return [Course(**r) for r in rows]

    def get_enrolled_courses(self, student_id: str) -> List[Course]:
        rows = self._fetchall(
            f"""
            select {_COURSE_COLUMNS} from public.courses c
            join public.course_enrollments e on e.course_id = c.id
            where e.student_id = %s
            order by e.enrolled_at
            """,
            (student_id,),
        )
        return [Course(**r) for r in rows]

    # --- Units & lessons -----------------------------------------------------

    def create_course_unit(
        self, *, course_id: str, title: str, description: Optional[str], order_index: int
    ) -> CourseUnit:
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.course_units (course_id, title, description, order_index)
              values (%s, %s, %s, %s) returning *
            )
            select {_UNIT_COLUMNS} from inserted cu
            """,
            (course_id, title, description, order_index),
        )
        return CourseUnit(**row)

    def get_course_unit(self, unit_id: str) -> Optional[CourseUnit]:
        row = self._fetchone(f"select {_UNIT_COLUMNS} from public.course_units cu where cu.id = %s", (unit_id,))
        return CourseUnit(**row) if row else None

    def get_course_units(self, course_id: str) -> List[CourseUnit]:
        rows = self._fetchall(
            f"select {_UNIT_COLUMNS} from public.course_units cu where cu.course_id = %s order by cu.order_index, cu.created_at",
            (course_id,),
        )
        return [CourseUnit(**r) for r in rows]

    def create_lesson(
        self, *, unit_id: str, title: str, content: Optional[str], order_index: int, xp_reward: int
    ) -> Lesson:
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.lessons (unit_id, title, content, order_index, xp_reward)
              values (%s, %s, %s, %s, %s) returning *
            )
            select {_LESSON_COLUMNS} from inserted l
            """,
            (unit_id, title, content, order_index, xp_reward),
        )
        return Lesson(**row)

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        row = self._fetchone(f"select {_LESSON_COLUMNS} from public.lessons l where l.id = %s", (lesson_id,))
        return Lesson(**row) if row else None

    def get_lessons_by_unit(self, unit_id: str) -> List[Lesson]:
        rows = self._fetchall(
            f"select {_LESSON_COLUMNS} from public.lessons l where l.unit_id = %s order by l.order_index, l.created_at",
            (unit_id,),
        )
        return [Lesson(**r) for r in rows]

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
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.assignments
                (title, description, course_id, unit_id, teacher_id, due_date, total_points, status, xp_reward)
              values (%s, %s, %s, %s, %s, %s::timestamptz, %s, %s::assignment_status, %s) returning *
            )
            select {_ASSIGNMENT_COLUMNS} from inserted a
            """,
            (title, description, course_id, unit_id, teacher_id, due_date, total_points, status, xp_reward),
        )
        return Assignment(**row)

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        row = self._fetchone(
            f"select {_ASSIGNMENT_COLUMNS} from public.assignments a where a.id = %s", (assignment_id,)
        )
        return Assignment(**row) if row else None

    def get_assignments_by_teacher(self, teacher_id: str) -> List[Assignment]:
        rows = self._fetchall(
            f"select {_ASSIGNMENT_COLUMNS} from public.assignments a where a.teacher_id = %s order by a.created_at",
            (teacher_id,),
        )
        return [Assignment(**r) for r in rows]

    def get_assignments_by_course(self, course_id: str) -> List[Assignment]:
        rows = self._fetchall(
            f"select {_ASSIGNMENT_COLUMNS} from public.assignments a where a.course_id = %s order by a.created_at",
            (course_id,),
        )
        return [Assignment(**r) for r in rows]

    def get_pending_grading(self, teacher_id: str) -> List[AssignmentSubmission]:
        rows = self._fetchall(
            f"""
            select {_SUBMISSION_COLUMNS} from public.assignment_submissions s
            join public.assignments a on a.id = s.assignment_id
            where a.teacher_id = %s and s.status = 'submitted'
            order by s.submitted_at
            """,
            (teacher_id,),
        )
        return [AssignmentSubmission(**r) for r in rows]

    def create_submission(
        self,
        *,
        assignment_id: str,
        student_id: str,
        content: Optional[str],
        status: str,
        submitted_at: Optional[str],
    ) -> AssignmentSubmission:
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.assignment_submissions (assignment_id, student_id, content, status, submitted_at)
              values (%s, %s, %s, %s::submission_status, %s::timestamptz) returning *
            )
            select {_SUBMISSION_COLUMNS} from inserted s
            """,
            (assignment_id, student_id, content, status, submitted_at),
        )
        return AssignmentSubmission(**row)

    def get_submission(self, submission_id: str) -> Optional[AssignmentSubmission]:
        row = self._fetchone(
            f"select {_SUBMISSION_COLUMNS} from public.assignment_submissions s where s.id = %s", (submission_id,)
        )
        return AssignmentSubmission(**row) if row else None

    def grade_submission(
        self, submission_id: str, *, score: int, feedback: Optional[str]
    ) -> Optional[AssignmentSubmission]:
        row = self._fetchone(
            f"""
            with updated as (
              update public.assignment_submissions
                 set score = %s, feedback = %s, status = 'graded', graded_at = now(), updated_at = now()
               where id = %s
              returning *
            )
            select {_SUBMISSION_COLUMNS} from updated s
            """,
            (score, feedback, submission_id),
        )
        return AssignmentSubmission(**row) if row else None

    def get_student_submissions(self, student_id: str) -> List[AssignmentSubmission]:
        rows = self._fetchall(
            f"""
            select {_SUBMISSION_COLUMNS} from public.assignment_submissions s
            where s.student_id = %s order by s.created_at desc
            """,
            (student_id,),
        )
        return [AssignmentSubmission(**r) for r in rows]

    # --- Enrollments ---------------------------------------------------------

    def enroll_student(self, course_id: str, student_id: str) -> CourseEnrollment:
        row = self._fetchone(
            f"""
            with inserted as (
              insert into public.course_enrollments (course_id, student_id) values (%s, %s) returning *
            )
            select {_ENROLLMENT_COLUMNS} from inserted e
            """,
            (course_id, student_id),
        )
        return CourseEnrollment(**row)

    def get_enrollments(self, course_id: str) -> List[CourseEnrollment]:
        rows = self._fetchall(
            f"select {_ENROLLMENT_COLUMNS} from public.course_enrollments e where e.course_id = %s order by e.enrolled_at",
            (course_id,),
        )
        return [CourseEnrollment(**r) for r in rows]

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
        row = self._fetchone(
            f"""
            with upserted as (
              insert into public.student_progress as sp (student_id, lesson_id, completed, completed_at, time_spent)
              values (%s, %s, %s, %s::timestamptz, %s)
              on conflict (student_id, lesson_id) do update set
                completed = excluded.completed,
                completed_at = excluded.completed_at,
                time_spent = excluded.time_spent,
                updated_at = now()
              returning *
            )
            select {_PROGRESS_COLUMNS} from upserted sp
            """,
            (student_id, lesson_id, completed, completed_at, time_spent),
        )
        return StudentProgress(**row)

    def get_progress(self, student_id: str, lesson_id: str) -> Optional[StudentProgress]:
        row = self._fetchone(
            f"select {_PROGRESS_COLUMNS} from public.student_progress sp where sp.student_id = %s and sp.lesson_id = %s",
            (student_id, lesson_id),
        )
        return StudentProgress(**row) if row else None

    def get_student_progress(self, student_id: str, course_id: Optional[str] = None) -> List[StudentProgress]:
        if course_id is None:
            rows = self._fetchall(
                f"select {_PROGRESS_COLUMNS} from public.student_progress sp where sp.student_id = %s",
                (student_id,),
            )
        else:
            rows = self._fetchall(
                f"""
                select {_PROGRESS_COLUMNS} from public.student_progress sp
                join public.lessons l on l.id = sp.lesson_id
                join public.course_units cu on cu.id = l.unit_id
                where sp.student_id = %s and cu.course_id = %s
                """,
                (student_id, course_id),
            )
        return [StudentProgress(**r) for r in rows]

    # --- Analytics -----------------------------------------------------------

    def log_event(
        self,
        *,
        user_id: Optional[str],
        organization_id: Optional[str],
        event_type: str,
        event_data: Dict[str, Any],
    ) -> AnalyticsEvent:
        row = self._fetchone(
            f"""
            insert into public.analytics_events (user_id, organization_id, event_type, event_data)
            values (%s, %s, %s, %s)
            returning id, user_id, organization_id, event_type, event_data, {_ts('"timestamp"', '"timestamp"')}
            """,
            (user_id, organization_id, event_type, Json(dict(event_data or {}))),
        )
        if row.get("event_data") is None:
            row["event_data"] = {}
        return AnalyticsEvent(**row)

    # --- Aggregates ----------------------------------------------------------

    def get_dashboard_stats(self, organization_id: str) -> Dict[str, Any]:
        users = self._fetchone(
            """
            select count(*) as total, count(*) filter (where is_active) as active
            from public.users where organization_id = %s
            """,
            (organization_id,),
        )
        courses = self._fetchone(
            "select count(*) as total from public.courses where organization_id = %s", (organization_id,)
        )
        engagement = self._fetchone(
            """
            select avg(e.completion_percentage) as avg_rate from public.course_enrollments e
            join public.courses c on c.id = e.course_id
            where c.organization_id = %s
            """,
            (organization_id,),
        )
        avg_rate = engagement["avg_rate"] if engagement else None
        return {
            "totalUsers": int(users["total"] or 0),
            "activeUsers": int(users["active"] or 0),
            "totalCourses": int(courses["total"] or 0),
            "avgEngagementRate": round(float(avg_rate), 2) if avg_rate is not None else 0,
        }

    def get_teacher_insights(self, teacher_id: str) -> Dict[str, Any]:
        pending = self._fetchone(
            """
            select count(*) as total from public.assignment_submissions s
            join public.assignments a on a.id = s.assignment_id
            where a.teacher_id = %s and s.status = 'submitted'
            """,
            (teacher_id,),
        )
        courses = self._fetchone(
            "select count(*) as total from public.courses where teacher_id = %s", (teacher_id,)
        )
        students = self._fetchone(
            """
            select count(distinct e.student_id) as total from public.course_enrollments e
            join public.courses c on c.id = e.course_id
            where c.teacher_id = %s
            """,
            (teacher_id,),
        )
        return {
            "pendingGrading": int(pending["total"] or 0),
            "totalCourses": int(courses["total"] or 0),
            "totalStudents": int(students["total"] or 0),
        }

    def get_student_insights(self, student_id: str) -> Dict[str, Any]:
        progress = self._fetchone(
            """
            select count(*) filter (where sp.completed) as completed,
                   coalesce(sum(l.xp_reward) filter (where sp.completed), 0) as xp
            from public.student_progress sp
            join public.lessons l on l.id = sp.lesson_id
            where sp.student_id = %s
            """,
            (student_id,),
        )
        user = self._fetchone("select current_streak from public.users where id = %s", (student_id,))
        return {
            "completedLessons": int(progress["completed"] or 0),
            "totalXP": int(progress["xp"] or 0),
            "currentStreak": int(user["current_streak"] or 0) if user else 0,
        }

    # --- Tenancy -------------------------------------------------------------

    def get_scope(self, kind: str, entity_id: str) -> Optional[Scope]:
        if kind not in SCOPE_KINDS:
            raise ValueError(f"unknown scope kind: {kind}")
        row = self._fetchone(_SCOPE_SQL[kind], (entity_id,))
        if row is None:
            return None
        return Scope(organization_id=row["organization_id"], teacher_id=row["teacher_id"])
