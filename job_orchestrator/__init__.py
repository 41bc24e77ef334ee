"""Autonomous multi-step job orchestration: planning, polling, notification and recovery."""

from .classifier import is_complex
from .errors import (
    EmptyPlanError,
    ExecutorServiceError,
    OrchestrationError,
    PlanParseError,
    RecoveryAbortedError,
    RecoveryParseError,
)
from .formatter import format_job_results
from .models import JobOutcome, JobPlan, JobStatusSnapshot, JobStep, RecoveryDecision, RecoveryKind
