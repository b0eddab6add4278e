"""
Domain values shared by the submission flow, the session machine and the
report renderer. Framework independent: nothing here touches Flask or the
database.
"""
from __future__ import annotations

import base64
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class Plan(enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


class AnalysisStatus(enum.Enum):
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Patient:
    name: str
    age: int
    symptoms: str = ""


@dataclass(frozen=True)
class ExamImage:
    """Uploaded exam image held in memory for one submission."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{b64}"


@dataclass(frozen=True)
class ExamAnalysis:
    id: str
    patient: Patient
    image_url: str
    analysis: str
    recommendations: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: AnalysisStatus = AnalysisStatus.COMPLETED


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str


@dataclass(frozen=True)
class ProfileSnapshot:
    """Read-only copy of a stored profile."""
    id: int
    full_name: str
    email: str
    plan: Plan
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_plan_active: bool = False

    @property
    def is_premium(self) -> bool:
        return self.plan == Plan.PREMIUM
