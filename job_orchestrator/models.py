import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

# Shared action vocabulary: action -> what the executor does for it.
# Actions outside this set are passed through untouched.
ACTION_VOCABULARY: Dict[str, str] = {
    "discover": "Find businesses by niche and location",
    "filter": "Filter businesses by criteria (rating, reviews, etc.)",
    "enrich": "Find owner/decision-maker contact information for a business",
    "audit": "Analyze a business website",
    "analyze": "Perform business analysis",
    "draft-email": "Draft an outreach email",
}

StepStatus = Literal["pending", "running", "completed", "failed"]

TERMINAL_STATUSES = ("completed", "failed", "cancelled")


def new_step_id() -> str:
    return uuid.uuid4().hex[:12]


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


OptStr = Annotated[Optional[str], BeforeValidator(_str_or_none)]
OptFloat = Annotated[Optional[float], BeforeValidator(_number_or_none)]
OptInt = Annotated[Optional[int], BeforeValidator(_int_or_none)]


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

class JobStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_step_id, min_length=1)
    order: int = Field(ge=1)
    action: str
    params: Any = Field(default_factory=dict)
    status: StepStatus = "pending"


class JobPlan(BaseModel):
    description: str
    steps: List[JobStep]

    def actions(self) -> List[str]:
        return [s.action for s in self.steps]


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

class RecoveryKind(str, Enum):
    SKIP = "SKIP"
    RETRY = "RETRY"
    ALTERNATIVE = "ALTERNATIVE"
    ABORT = "ABORT"


class ModifiedStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: OptStr = None
    params: Any = None


class RecoveryDecision(BaseModel):
    kind: RecoveryKind
    reason: Optional[str] = None
    modified_step: Optional[ModifiedStep] = None

    @property
    def replaces_step(self) -> bool:
        return self.kind in (RecoveryKind.RETRY, RecoveryKind.ALTERNATIVE)


# ---------------------------------------------------------------------------
# Executor service payloads
# ---------------------------------------------------------------------------

class StepSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str = "unknown"
    status: str = "unknown"

    @field_validator("action", "status", mode="before")
    @classmethod
    def _unknown_if_missing(cls, v):
        return v if isinstance(v, str) else "unknown"


class JobStatusSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: str = "unknown"
    current_step: int = Field(0, alias="currentStep")
    total_steps: int = Field(1, alias="totalSteps")
    steps: List[StepSnapshot] = Field(default_factory=list)
    error: OptStr = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return v if isinstance(v, str) else "unknown"

    @field_validator("current_step", mode="before")
    @classmethod
    def _current(cls, v):
        return _int_or_none(v) or 0

    @field_validator("total_steps", mode="before")
    @classmethod
    def _total(cls, v):
        value = _int_or_none(v)
        return 1 if value is None else value

    @field_validator("steps", mode="before")
    @classmethod
    def _steps(cls, v):
        if not isinstance(v, list):
            return []
        return [s if isinstance(s, dict) else {} for s in v]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def step_at(self, position: int) -> Optional[StepSnapshot]:
        """Step at a 1-based position, or None when the list is too short."""
        if position < 1 or position > len(self.steps):
            return None
        return self.steps[position - 1]


class JobSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: OptStr = None
    status: OptStr = None


class Business(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = "Unknown"
    rating: OptFloat = None
    review_count: OptInt = Field(None, alias="reviewCount")
    phone: OptStr = None
    website: OptStr = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return v if isinstance(v, str) else "Unknown"


class Contact(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: OptStr = None
    role: OptStr = None
    email: OptStr = None
    phone: OptStr = None


def _entries(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [e if isinstance(e, dict) else {} for e in value]


class JobResults(BaseModel):
    """Final results document. Only the parts we render are typed."""

    model_config = ConfigDict(extra="allow")

    job: Optional[JobSummary] = None
    businesses: List[Business] = Field(default_factory=list)
    contacts: List[Contact] = Field(default_factory=list)

    @field_validator("job", mode="before")
    @classmethod
    def _job(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator("businesses", "contacts", mode="before")
    @classmethod
    def _lists(cls, v):
        return _entries(v)


class JobOutcome(BaseModel):
    job_id: str
    status: str
    error: Optional[str] = None
    snapshot: Optional[JobStatusSnapshot] = None
    results: JobResults = Field(default_factory=JobResults)

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"


@dataclass
class JobPollState:
    job_id: str
    channel_target: str
    last_notified_step_index: int = 0
