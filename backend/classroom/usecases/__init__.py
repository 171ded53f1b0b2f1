"""Use case layer for the Classroom context.

Re-export common use cases for convenient imports in routes and tests.
"""

from .dashboard import DashboardStatsUseCase
from .errors import MissingOrganizationError
from .grading import (
    GradeSubmissionInput,
    GradeSubmissionUseCase,
    SubmitAssignmentInput,
    SubmitAssignmentUseCase,
)
from .progress import RecordProgressInput, RecordProgressUseCase

__all__ = [
    "DashboardStatsUseCase",
    "MissingOrganizationError",
    "GradeSubmissionInput",
    "GradeSubmissionUseCase",
    "SubmitAssignmentInput",
    "SubmitAssignmentUseCase",
    "RecordProgressInput",
    "RecordProgressUseCase",
]
