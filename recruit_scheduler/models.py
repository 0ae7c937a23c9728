from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from .utils.dates import parse_instant


MIN_CAPACITY = 1
MAX_CAPACITY = 10
MIN_SCORE = 1
MAX_SCORE = 5


class SlotStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class Decision(str, Enum):
    YES = "YES"
    MAYBE_YES = "MAYBE_YES"
    UNSURE = "UNSURE"
    MAYBE_NO = "MAYBE_NO"
    NO = "NO"

    @property
    def label(self) -> str:
        return self.value.replace("_", "-").title()


class RubricCategory(str, Enum):
    BEHAVIORAL_LEADERSHIP = "behavioralLeadership"
    BEHAVIORAL_PROBLEM_SOLVING = "behavioralProblemSolving"
    BEHAVIORAL_INTEREST = "behavioralInterest"
    MARKET_SIZING_TEAMWORK = "marketSizingTeamwork"
    MARKET_SIZING_LOGIC = "marketSizingLogic"
    MARKET_SIZING_CREATIVITY = "marketSizingCreativity"

    @property
    def section(self) -> str:
        return "behavioral" if self.value.startswith("behavioral") else "marketSizing"


@dataclass
class Signup:
    """A registrant's reservation against a meeting slot."""
    id: Any
    full_name: str
    email: str
    student_id: Optional[str] = None
    attended: bool = False

    @property
    def display_student_id(self) -> str:
        return self.student_id or "-"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Signup":
        return cls(
            id=data["id"],
            full_name=data.get("fullName", ""),
            email=data.get("email", ""),
            student_id=data.get("studentId") or None,
            attended=bool(data.get("attended", False)),
        )


@dataclass
class MeetingSlot:
    """A bookable coffee chat window with a fixed capacity."""
    id: Any
    location: str
    start_time: datetime
    capacity: int
    end_time: Optional[datetime] = None
    signups: List[Signup] = field(default_factory=list)
    created_at: Optional[datetime] = None
    reported_signups: int = 0

    @property
    def signup_count(self) -> int:
        return len(self.signups) or self.reported_signups

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.signup_count, 0)

    @property
    def is_full(self) -> bool:
        return self.remaining == 0

    @property
    def attended_count(self) -> int:
        return sum(1 for signup in self.signups if signup.attended)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MeetingSlot":
        capacity = int(data["capacity"])
        signups = [Signup.from_api(s) for s in data.get("signups") or []]

        # The public listing reports remaining capacity instead of the signups
        reported = 0
        if not signups and data.get("remaining") is not None:
            reported = max(capacity - int(data["remaining"]), 0)

        return cls(
            id=data["id"],
            location=data.get("location", ""),
            start_time=parse_instant(data["startTime"]),
            end_time=parse_instant(data["endTime"]) if data.get("endTime") else None,
            capacity=capacity,
            signups=signups,
            created_at=parse_instant(data["createdAt"]) if data.get("createdAt") else None,
            reported_signups=reported,
        )


@dataclass(frozen=True)
class Registrant:
    """Identity supplied on the public signup form."""
    full_name: str
    email: str
    student_id: Optional[str] = None

    def to_api(self) -> Dict[str, Any]:
        return {
            "fullName": self.full_name,
            "email": self.email,
            "studentId": self.student_id or "",
        }


@dataclass(frozen=True)
class SignupResult:
    message: str
    needs_account: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "SignupResult":
        return cls(
            message=data.get("message") or "Successfully signed up! You will receive a confirmation email shortly.",
            needs_account=bool(data.get("needsAccount", False)),
        )


@dataclass(frozen=True)
class ActiveCycle:
    """The recruiting cycle slots are currently offered for."""
    id: Any
    name: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ActiveCycle":
        def _date(value):
            return parse_instant(value).date() if value else None

        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            start_date=_date(data.get("startDate")),
            end_date=_date(data.get("endDate")),
        )


class EvaluationKey(NamedTuple):
    application_id: Any
    evaluator_id: Any


@dataclass
class Evaluation:
    """One evaluator's scorecard for one application."""
    notes: str = ""
    decision: Optional[Decision] = None
    rubric_scores: Dict[RubricCategory, int] = field(default_factory=dict)

    @property
    def is_started(self) -> bool:
        return bool(self.notes) or self.decision is not None

    def section_total(self, section: str) -> int:
        return sum(score for category, score in self.rubric_scores.items() if category.section == section)

    @property
    def behavioral_total(self) -> int:
        return self.section_total("behavioral")

    @property
    def market_sizing_total(self) -> int:
        return self.section_total("marketSizing")

    def to_api(self, application_id: Any) -> Dict[str, Any]:
        return {
            "applicationId": application_id,
            "notes": self.notes,
            "decision": self.decision.value if self.decision else None,
            "rubricScores": {category.value: score for category, score in self.rubric_scores.items()},
        }

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Evaluation":
        scores = {}
        for name, score in (data.get("rubricScores") or {}).items():
            try:
                category = RubricCategory(name)
            except ValueError:
                # Totals and retired categories come back alongside the scores
                continue
            if score is not None:
                scores[category] = int(score)

        try:
            decision = Decision(data["decision"]) if data.get("decision") else None
        except ValueError:
            # Unknown decisions are treated as undecided
            decision = None
        return cls(
            notes=data.get("notes") or "",
            decision=decision,
            rubric_scores=scores,
        )


@dataclass
class BatchSaveResult:
    """Outcome of saving several evaluations without a transaction."""
    succeeded: List[Any] = field(default_factory=list)
    failed: Dict[Any, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
