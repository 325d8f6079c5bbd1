"""
Domain models for physical-therapy clinical records.

These models represent the core clinical concepts and are storage-agnostic.
They use Pydantic for validation so that a record which exists at all is a
record whose values lie inside their clinical domain.
"""

import math
import re
from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, NamedTuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def new_record_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntityKind(str, Enum):
    """Kinds of entity held in the local record store."""

    INSURANCE_CARD = "insurance_card"
    MEASUREMENT = "measurement"


class MeasurementType(str, Enum):
    """Assessment instruments we can trend."""

    ROM = "ROM"  # Range of Motion, degrees
    MMT = "MMT"  # Manual Muscle Testing, ordinal grade


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BILATERAL = "bilateral"


class ROMJoint(str, Enum):
    """Joints with known clinical ROM limits."""

    SHOULDER = "shoulder"
    ELBOW = "elbow"
    WRIST = "wrist"
    HIP = "hip"
    KNEE = "knee"
    ANKLE = "ankle"
    CERVICAL_SPINE = "cervical_spine"
    THORACIC_SPINE = "thoracic_spine"
    LUMBAR_SPINE = "lumbar_spine"


# Approximate clinical norms, for reference display only
NORMAL_ROM_RANGES: dict[ROMJoint, float] = {
    ROMJoint.SHOULDER: 180,
    ROMJoint.ELBOW: 150,
    ROMJoint.WRIST: 80,
    ROMJoint.HIP: 120,
    ROMJoint.KNEE: 135,
    ROMJoint.ANKLE: 50,
    ROMJoint.CERVICAL_SPINE: 80,
    ROMJoint.THORACIC_SPINE: 40,
    ROMJoint.LUMBAR_SPINE: 60,
}

# Hard upper limits used for validation (normal range plus hypermobility allowance)
JOINT_MAX_DEGREES: dict[ROMJoint, float] = {
    ROMJoint.SHOULDER: 200,
    ROMJoint.ELBOW: 160,
    ROMJoint.WRIST: 100,
    ROMJoint.HIP: 140,
    ROMJoint.KNEE: 150,
    ROMJoint.ANKLE: 70,
    ROMJoint.CERVICAL_SPINE: 100,
    ROMJoint.THORACIC_SPINE: 60,
    ROMJoint.LUMBAR_SPINE: 80,
}
DEFAULT_MAX_DEGREES = 360.0

MMT_MIN_GRADE = 0
MMT_MAX_GRADE = 5

MMT_GRADE_DESCRIPTIONS: dict[int, tuple[str, str]] = {
    0: ("Zero", "No contraction"),
    1: ("Trace", "Palpable contraction, no movement"),
    2: ("Poor", "Full ROM, gravity eliminated"),
    3: ("Fair", "Full ROM against gravity"),
    4: ("Good", "Full ROM against moderate resistance"),
    5: ("Normal", "Full ROM against maximum resistance"),
}


def max_degrees_for(target: str) -> float:
    """Upper ROM limit for a joint; unknown targets get the full circle."""
    try:
        return JOINT_MAX_DEGREES[ROMJoint(target)]
    except ValueError:
        return DEFAULT_MAX_DEGREES


class GroupKey(NamedTuple):
    """Trend group a measurement belongs to. Computed, never stored."""

    type: MeasurementType
    target: str
    side: Side


class Measurement(BaseModel):
    """
    A single ROM or MMT reading.

    Measurements are historical facts: frozen once created. A correction is a
    new measurement whose ``corrects_id`` names the reading it supersedes,
    never an edit of an existing one.
    """

    model_config = ConfigDict(frozen=True)

    entity_kind: ClassVar[EntityKind] = EntityKind.MEASUREMENT

    kind: Literal["measurement"] = "measurement"
    id: str = Field(default_factory=new_record_id, min_length=1)
    patient_id: str = Field(min_length=1)
    type: MeasurementType
    target: str = Field(min_length=1, max_length=80, description="Joint or muscle group")
    side: Side
    value: float = Field(description="Degrees for ROM, grade for MMT")
    recorded_at: datetime = Field(default_factory=_utcnow)
    recorded_by: str = Field(min_length=1, description="Clinician reference")
    visit_id: str | None = None
    notes: str | None = Field(default=None, max_length=2000)
    corrects_id: str | None = Field(
        default=None, description="Id of the earlier reading this one supersedes"
    )

    @field_validator("target")
    @classmethod
    def normalize_target(cls, v: str) -> str:
        normalized = re.sub(r"[\s\-]+", "_", v.strip().lower())
        if not normalized:
            raise ValueError("target must not be blank")
        return normalized

    @field_validator("recorded_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        # Naive timestamps from local forms are taken as UTC
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)

    @model_validator(mode="after")
    def check_value_domain(self) -> "Measurement":
        if not math.isfinite(self.value):
            raise ValueError("value must be a finite number")
        if self.corrects_id is not None and self.corrects_id == self.id:
            raise ValueError("a measurement cannot correct itself")

        if self.type == MeasurementType.ROM:
            upper = max_degrees_for(self.target)
            if not 0 <= self.value <= upper:
                raise ValueError(
                    f"ROM degree {self.value:.1f} outside 0-{upper:.0f} for {self.target}"
                )
        else:
            if not self.value.is_integer() or not MMT_MIN_GRADE <= self.value <= MMT_MAX_GRADE:
                raise ValueError(
                    f"MMT grade must be an integer {MMT_MIN_GRADE}-{MMT_MAX_GRADE} "
                    f"(got {self.value})"
                )
        return self

    @property
    def group_key(self) -> GroupKey:
        return GroupKey(self.type, self.target, self.side)

    @property
    def unit(self) -> str:
        return "degrees" if self.type == MeasurementType.ROM else "grade"


BHYT_PROVIDER = "BHYT"
BHYT_CARD_PATTERN = re.compile(r"^[A-Z]{2}\d-\d{4}-\d{5}-\d{5}$")

# Beneficiary prefix code -> default coverage tier (percent)
BHYT_PREFIX_COVERAGE: dict[str, int] = {
    "DN": 80,  # Enterprise workers
    "HC": 80,  # Civil servants
    "HT": 95,  # Retirees
    "TE": 100,  # Children under 6
    "HS": 80,  # Students
    "HN": 100,  # Poor households
    "CN": 95,  # Near-poor households
    "TN": 70,  # Voluntary participants
    "CC": 100,  # Policy beneficiaries
    "QN": 100,  # Military
    "CA": 95,  # Veterans
    "NN": 80,  # Foreign workers
    "GD": 100,  # Martyrs' families
    "NO": 100,  # Elderly 80+
    "CB": 100,  # War veterans
    "XK": 100,  # Poor / near-poor
    "TX": 80,  # Social insurance
}


def default_coverage_for_prefix(prefix_code: str) -> int | None:
    return BHYT_PREFIX_COVERAGE.get(prefix_code.strip().upper())


class CoverageResult(NamedTuple):
    insurance_pays: float
    copay: float


class InsuranceCard(BaseModel):
    """Patient insurance card. Updated in place by id on form save."""

    model_config = ConfigDict(validate_assignment=True)

    entity_kind: ClassVar[EntityKind] = EntityKind.INSURANCE_CARD

    kind: Literal["insurance_card"] = "insurance_card"
    id: str = Field(default_factory=new_record_id, min_length=1)
    patient_id: str = Field(min_length=1)
    provider: str = Field(default=BHYT_PROVIDER, min_length=1)
    policy_number: str = Field(min_length=1, description="Card number")
    prefix_code: str = Field(
        description="Beneficiary category code, taken from the card number when omitted"
    )
    coverage_percent: float = Field(default=80.0, ge=0.0, le=100.0)
    copay_rate: float = Field(default=20.0, ge=0.0, le=100.0)
    hospital_registration_code: str | None = None
    valid_from: date
    valid_to: date
    expiration_date: date | None = None
    is_verified: bool = False
    notes: str | None = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def derive_prefix_code(cls, data: Any) -> Any:
        # The beneficiary prefix is the first two letters of the card number
        if isinstance(data, dict) and not str(data.get("prefix_code") or "").strip():
            policy_number = data.get("policy_number")
            if isinstance(policy_number, str):
                data = {**data, "prefix_code": policy_number.strip().upper()[:2]}
        return data

    @field_validator("policy_number")
    @classmethod
    def upper_strip(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("policy number must not be blank")
        return v

    @field_validator("prefix_code")
    @classmethod
    def check_prefix_shape(cls, v: str) -> str:
        v = v.strip().upper()
        if not re.fullmatch(r"[A-Z]{2}", v):
            raise ValueError("prefix code must be 2 uppercase letters")
        return v

    @field_validator("hospital_registration_code")
    @classmethod
    def check_registration_code(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if len(v) != 5:
            raise ValueError("hospital registration code must be exactly 5 characters")
        return v

    @model_validator(mode="after")
    def check_card(self) -> "InsuranceCard":
        if self.valid_from >= self.valid_to:
            raise ValueError("valid_from must be before valid_to")

        if self.provider.upper() == BHYT_PROVIDER:
            if not BHYT_CARD_PATTERN.match(self.policy_number):
                raise ValueError("invalid card format, expected XX9-9999-99999-99999")
            if self.prefix_code not in BHYT_PREFIX_COVERAGE:
                raise ValueError(f"unknown BHYT prefix code {self.prefix_code!r}")
            if self.policy_number[:2] != self.prefix_code:
                raise ValueError(
                    f"prefix code {self.prefix_code!r} does not match card number "
                    f"{self.policy_number[:2]!r}"
                )
        return self

    def is_expired(self, on: date | None = None) -> bool:
        day = on or datetime.now(UTC).date()
        if self.expiration_date is not None and day > self.expiration_date:
            return True
        return day > self.valid_to

    def calculate_coverage(self, total_amount: float) -> CoverageResult:
        insurance_pays = total_amount * (self.coverage_percent / 100)
        return CoverageResult(insurance_pays=insurance_pays, copay=total_amount - insurance_pays)


AnyRecord = InsuranceCard | Measurement

# Discriminated form used when decoding persisted records
Record = Annotated[AnyRecord, Field(discriminator="kind")]

RECORD_TYPES: dict[EntityKind, type[InsuranceCard] | type[Measurement]] = {
    EntityKind.INSURANCE_CARD: InsuranceCard,
    EntityKind.MEASUREMENT: Measurement,
}
