import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)


class Stage(int, Enum):
    """Guided workflow stages. Values are ordinal for comparison."""

    DECONSTRUCT = 1
    SCENARIOS = 2
    BIAS_CHECK = 3
    SECOND_ORDER = 4
    LOCK = 5
    COMPLETE = 6

    @classmethod
    def parse(cls, value) -> "Stage | None":
        try:
            return cls(value)
        except ValueError:
            return None


class View(str, Enum):
    DECONSTRUCT = "deconstruct"
    SCENARIOS = "scenarios"
    BIAS_CHECK = "bias_check"
    SECOND_ORDER = "second_order"
    LOCK = "lock"
    COMPLETE = "complete"
    DASHBOARD = "dashboard"


class AccessTier(str, Enum):
    FREE = "free"
    PAID = "paid"


class Category(str, Enum):
    CAREER = "career"
    BUSINESS = "business"
    MONEY = "money"
    PERSONAL = "personal"
    RELATIONSHIPS = "relationships"
    GENERAL = "general"


class TimeHorizon(str, Enum):
    WEEKS = "weeks"
    MONTHS = "months"
    ONE_TO_TWO_YEARS = "1-2 years"
    FIVE_PLUS_YEARS = "5+ years"


class Reversibility(str, Enum):
    YES = "yes"
    PARTIALLY = "partially"
    NO = "no"


class ReflectionType(str, Enum):
    THIRTY_DAY = "30_day"
    NINETY_DAY = "90_day"
    ONE_EIGHTY_DAY = "180_day"


class RiskTolerance(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def as_utc(value):
    """SQLite hands back naive timestamps; everything is written in UTC."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Per-stage input field sets. Unknown keys are rejected and an explicit null
# is ignored, so answers can be edited but never blanked out.
class StageFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def present(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True, mode="json")


class DeconstructionFields(StageFields):
    time_horizon: TimeHorizon | None = Field(
        default=None, description="How far into the future the decision reaches."
    )
    is_reversible: Reversibility | None = Field(
        default=None, description="Whether the subject can change course later."
    )
    do_nothing_outcome: Text | None = Field(
        default=None, description="What happens if the status quo is kept."
    )
    biggest_fear: Text | None = None
    future_regret: Text | None = None


class ScenarioFields(StageFields):
    best_case_scenario: Text | None = None
    likely_case_scenario: Text | None = None
    worst_case_scenario: Text | None = None


class SecondOrderFields(StageFields):
    second_order_effects: Text | None = None


class LockFields(StageFields):
    final_decision: Text | None = None
    key_reasons: Text | None = None
    risks_accepted: Text | None = None


STAGE_FIELDS: dict[Stage, type[StageFields]] = {
    Stage.DECONSTRUCT: DeconstructionFields,
    Stage.SCENARIOS: ScenarioFields,
    Stage.SECOND_ORDER: SecondOrderFields,
    Stage.LOCK: LockFields,
}


class Decision(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: str = ""
    category: str = Category.GENERAL.value
    status: str = "in_progress"
    # Kept as a raw integer: a corrupted value must still load so the view
    # layer can route it to the dashboard.
    stage: int = Stage.DECONSTRUCT.value
    is_locked: bool = False
    locked_at: datetime | None = None

    time_horizon: str | None = None
    is_reversible: str | None = None
    do_nothing_outcome: str | None = None
    biggest_fear: str | None = None
    future_regret: str | None = None
    best_case_scenario: str | None = None
    likely_case_scenario: str | None = None
    worst_case_scenario: str | None = None
    second_order_effects: str | None = None
    final_decision: str | None = None
    key_reasons: str | None = None
    risks_accepted: str | None = None

    ai_insight_summary: str | None = None
    ai_scenario_analysis: str | None = None
    detected_biases: list[str] | None = None
    ai_bias_explanation: str | None = None
    ai_second_order_analysis: str | None = None
    decision_summary: str | None = None
    biases_acknowledged: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("detected_biases", mode="before")
    @classmethod
    def parse_biases(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value

    @field_validator("description", mode="before")
    @classmethod
    def empty_description(cls, value):
        return value or ""

    @field_validator("is_locked", mode="before")
    @classmethod
    def locked_flag(cls, value):
        return bool(value)

    @field_validator("locked_at", "created_at", "updated_at", mode="before")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)

    def has(self, name: str) -> bool:
        value = getattr(self, name)
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip() != ""
        return True

    def missing(self, names) -> list[str]:
        return [name for name in names if not self.has(name)]


SCORE_FIELDS = (
    "overall_score",
    "clarity_score",
    "bias_score",
    "reversibility_score",
    "analysis_depth_score",
)


def clamp_score(value) -> int:
    """Coerce a score from the analysis service into [0, 100]."""
    if isinstance(value, bool):
        raise ValueError("score must be a number")
    try:
        number = round(float(value))
    except (TypeError, ValueError):
        raise ValueError(f"score must be a number, got {value!r}")
    return max(0, min(100, number))


class ScoreResponse(BaseModel):
    overall_score: int = Field(description="Overall decision quality from 0 to 100.")
    clarity_score: int = Field(
        description="How clearly the decision and its reasons are stated, 0 to 100."
    )
    bias_score: int = Field(
        description="How well cognitive biases were identified and handled, 0 to 100."
    )
    reversibility_score: int = Field(
        description="How well reversibility and downside were considered, 0 to 100."
    )
    analysis_depth_score: int = Field(
        description="Depth of scenario and second-order analysis, 0 to 100."
    )
    explanation: str = Field(
        description="Two or three sentences explaining the scores."
    )

    @field_validator(*SCORE_FIELDS, mode="before")
    @classmethod
    def clamp(cls, value):
        return clamp_score(value)


class DecisionScore(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    decision_id: str
    overall_score: int
    clarity_score: int
    bias_score: int
    reversibility_score: int
    analysis_depth_score: int
    explanation: str = ""
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class AnalysisResult(BaseModel):
    stage: Stage
    outputs: dict[str, Any]
    cached: bool = False


class ReflectionInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aged_well: bool
    what_surprised: str | None = None
    what_differently: str | None = None


class DecisionReflection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    decision_id: str
    user_id: str
    reflection_type: ReflectionType
    aged_well: bool
    what_surprised: str | None = None
    what_differently: str | None = None
    ai_reflection_analysis: str | None = None
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class BiasProfile(BaseModel):
    """Bias patterns across all of a subject's locked decisions."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    common_biases: list[str] = []
    risk_tolerance: RiskTolerance | None = None
    fear_patterns: str | None = None
    overconfidence_patterns: str | None = None
    ai_profile_summary: str | None = None
    total_decisions_analyzed: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("common_biases", mode="before")
    @classmethod
    def parse_biases(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value or []

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class DecisionComparison(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    decision_ids: list[str]
    ai_comparison_analysis: str | None = None
    created_at: datetime | None = None

    @field_validator("decision_ids", mode="before")
    @classmethod
    def parse_ids(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class CompareRequest(BaseModel):
    decision_ids: list[str] = Field(min_length=2, max_length=4)
    title: str | None = None


class CreateDecisionRequest(BaseModel):
    title: Text
    description: str = ""
    category: Category = Category.GENERAL


class UpdateFieldsRequest(BaseModel):
    stage: Stage
    fields: dict[str, Any]


class LockRequest(BaseModel):
    final_decision: str = ""
    key_reasons: str = ""
    risks_accepted: str | None = None


class DecisionState(BaseModel):
    decision: Decision
    view: View
