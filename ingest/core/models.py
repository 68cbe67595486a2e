from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ingest.core.errors import ConfigurationError, ValidationError


class SourceType(str, Enum):
    ASHBY = "ashby"
    GREENHOUSE = "greenhouse"
    OTHER = "other"


class Company(BaseModel):
    """
    A tracked company, validated at the input boundary.

    Accepts both snake_case and the camelCase keys used by the admin export
    (``jobBoardUrl``, ``sourceType``, ``containerXPath``).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    website: Optional[str] = None
    job_board_url: str = Field(alias="jobBoardUrl")
    source_type: str = Field(alias="sourceType")
    container_xpath: Optional[str] = Field(default=None, alias="containerXPath")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        # Admin exports may carry numeric ids
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("id", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("job_board_url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"job board URL must be an absolute http(s) URL: {value!r}")
        return value

    @field_validator("source_type")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Company":
        """Build a Company or raise ConfigurationError describing what is wrong."""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(
                f"Invalid company {data.get('name') or data.get('id')!r}: {problems}"
            ) from e


@dataclass
class RawPosting:
    """
    Adapter output for one listed posting, before normalization.
    """

    title: str
    url: str
    location: Optional[str] = None
    department: Optional[str] = None
    compensation: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None


@dataclass
class Compensation:
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None
    type: str = "annual"  # annual | hourly

    def __post_init__(self):
        if self.type not in ("annual", "hourly"):
            raise ValidationError(f"Unknown compensation type: {self.type!r}")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValidationError(
                f"Compensation min {self.min} is greater than max {self.max}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "currency": self.currency,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Compensation":
        return cls(
            min=data.get("min"),
            max=data.get("max"),
            currency=data.get("currency"),
            type=data.get("type", "annual"),
        )


# Fields compared by reconciliation to decide whether a stored job changed.
COMPARED_FIELDS = (
    "title",
    "locations",
    "compensation",
    "description",
    "requirements",
    "department",
)


@dataclass
class JobRecord:
    """
    Canonical Job model representing one normalized job posting.
    """

    external_id: str
    company_id: str
    url: str
    title: str
    source: str
    locations: List[str] = field(default_factory=list)
    compensation: Optional[Compensation] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    department: Optional[str] = None
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    removed_at: Optional[datetime] = None

    def differs_from(self, other: "JobRecord") -> bool:
        return any(getattr(self, f) != getattr(other, f) for f in COMPARED_FIELDS)


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class CompanyOutcome:
    """
    Result of ingesting one company during a run.
    """

    company_id: str
    company_name: str
    status: OutcomeStatus
    found: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0
    invalid: int = 0
    attempts: int = 0
    error_type: Optional[str] = None
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.SKIPPED)

    def summary(self) -> str:
        if self.status == OutcomeStatus.SUCCESS:
            return (
                f"found={self.found} new={self.inserted} updated={self.updated} "
                f"unchanged={self.unchanged} removed={self.removed} "
                f"invalid={self.invalid} attempts={self.attempts}"
            )
        if self.error:
            return f"{self.error_type}: {self.error}"
        return ""


@dataclass
class IngestionReport:
    outcomes: List[CompanyOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def by_company(self) -> Dict[str, CompanyOutcome]:
        return {o.company_id: o for o in self.outcomes}

    @property
    def succeeded(self) -> List[CompanyOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SUCCESS]

    @property
    def failed(self) -> List[CompanyOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def format(self) -> str:
        lines = []
        for o in self.outcomes:
            lines.append(f"{o.company_name:<30} {o.status.value:<9} {o.summary()}")
        lines.append(
            f"{len(self.outcomes)} companies: {len(self.succeeded)} succeeded, "
            f"{len(self.failed)} failed"
        )
        return "\n".join(lines)
