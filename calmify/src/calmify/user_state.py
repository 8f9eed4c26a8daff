"""
User State Data Model

Defines the dataclasses held in memory for each user: check-in history,
assessments, daily habits and profile settings.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any


EMERGENCY_RELATIONS = ["Parent", "Partner", "Sibling", "Friend", "Therapist"]


def new_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Habit:
    """A daily boolean task."""
    id: str
    label: str
    completed: bool = False


@dataclass
class EmergencyContact:
    """Person alerted when stress reaches a critical level."""
    name: str = ""
    phone: str = ""
    relation: str = "Parent"

    def is_configured(self) -> bool:
        return bool(self.phone and self.phone.strip())


@dataclass(frozen=True)
class CheckInRecord:
    """Result of one bio check-in. Never mutated after creation."""
    mood: str
    stress_level: float  # 0-10
    energy_level: float  # 0-10
    analysis: str
    recommendations: List[str] = field(default_factory=list)
    habits_completed: List[str] = field(default_factory=list)
    prediction: Optional[str] = None  # Probability based insight
    id: str = field(default_factory=new_id)
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class AssessmentRecord:
    """Scored questionnaire result."""
    type: str  # "PHQ-9" or "GAD-7"
    score: int
    severity: str
    id: str = field(default_factory=new_id)
    timestamp: int = field(default_factory=now_ms)


@dataclass
class ChatMessage:
    role: str  # "user" or "model"
    text: str
    id: str = field(default_factory=new_id)
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class Doctor:
    id: str
    name: str
    specialty: str
    rating: float
    image: str
    available: bool
    location: str = ""


@dataclass
class UserState:
    """All state for one user. Lost when the process exits."""
    name: str = "Alex"
    language: str = "en"
    history: List[CheckInRecord] = field(default_factory=list)  # Chronological
    assessments: List[AssessmentRecord] = field(default_factory=list)
    habits: Dict[str, List[Habit]] = field(default_factory=dict)  # Day key -> habits
    location: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None

    @property
    def latest(self) -> Optional[CheckInRecord]:
        return self.history[-1] if self.history else None


def to_dict(record: Any) -> Dict[str, Any]:
    """Convert a dataclass record to a plain dictionary for JSON responses."""
    return asdict(record)
