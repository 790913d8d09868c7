"""Pydantic models describing engine inputs, results and API payloads."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Annotated, Generic, Iterator, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from training_engine.exceptions import InvalidRangeError


T = TypeVar("T")


class EngineModel(BaseModel):
    """Base for immutable engine values."""

    model_config = ConfigDict(frozen=True)


# Enumerations

class MetricKind(str, Enum):
    HRV = "hrv"
    RESTING_HR = "resting_hr"
    SLEEP = "sleep"
    STEPS = "steps"
    WEIGHT = "weight"
    VO2MAX = "vo2max"


class SourceSystem(str, Enum):
    DEVICE = "device"
    THIRD_PARTY = "third_party"


class SourceAttribution(str, Enum):
    DEVICE_ONLY = "device_only"
    THIRD_PARTY_ONLY = "third_party_only"
    BOTH = "both"


class ActivityType(str, Enum):
    RUNNING = "running"
    CYCLING = "cycling"
    SWIMMING = "swimming"
    WALKING = "walking"
    HIKING = "hiking"
    ROWING = "rowing"
    STRENGTH = "strength"
    YOGA = "yoga"
    OTHER = "other"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    BUILDING = "building"


class LoadStatus(str, Enum):
    DETRAINING = "detraining"
    OPTIMAL = "optimal"
    BUILDING = "building"
    OVERREACHING = "overreaching"


class ReadinessTrend(str, Enum):
    IMPROVING = "improving"
    MAINTAINING = "maintaining"
    DECLINING = "declining"
    PEAKING = "peaking"
    RECOVERING = "recovering"


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


class RiskCategory(str, Enum):
    LOAD = "load"
    RECOVERY = "recovery"
    TREND = "trend"
    MONOTONY = "monotony"


class TrainingModel(str, Enum):
    POLARIZED = "polarized"
    PYRAMIDAL = "pyramidal"
    THRESHOLD = "threshold"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class FitnessTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    RAPID_DECLINE = "rapid_decline"


class DecouplingSeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class BalanceType(str, Enum):
    WELL_BALANCED = "well_balanced"
    AEROBIC_DOMINANT = "aerobic_dominant"
    ANAEROBIC_DOMINANT = "anaerobic_dominant"
    BOTH_WEAK = "both_weak"


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


# Result type

class Computed(EngineModel, Generic[T]):
    """A statistic that could be computed."""

    kind: Literal["computed"] = "computed"
    value: T
    confidence: Confidence | None = None


class InsufficientData(EngineModel):
    """A statistic that could not be computed for lack of data."""

    kind: Literal["insufficient_data"] = "insufficient_data"
    reason: str


RatioResult = Annotated[
    Union[Computed[float], InsufficientData],
    Field(discriminator="kind"),
]


def value_or_none(result: Computed | InsufficientData):
    """Return the computed value, or None when data was insufficient."""
    if isinstance(result, Computed):
        return result.value
    return None


# Ranges and profile

class DateRange(EngineModel):
    """Inclusive calendar date range."""

    start: date
    end: date

    @model_validator(mode="before")
    @classmethod
    def check_order(cls, values):
        if isinstance(values, dict):
            start, end = values.get("start"), values.get("end")
            if isinstance(start, date) and isinstance(end, date) and start > end:
                raise InvalidRangeError(
                    f"Range start {start.isoformat()} is after end {end.isoformat()}",
                    start=start,
                    end=end,
                )
        return values

    @classmethod
    def ending(cls, end: date, days: int) -> "DateRange":
        """Build the range of ``days`` calendar days ending on ``end``."""
        if days <= 0:
            raise InvalidRangeError(f"Day count must be positive, got {days}", days=days)
        return cls(start=end - timedelta(days=days - 1), end=end)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end

    def iter_days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)


class AthleteProfile(EngineModel):
    age: int = Field(ge=10, le=100)
    sex: Sex


# Raw and normalized inputs

class MetricReading(EngineModel):
    """A single raw reading as produced by a device or health store."""

    kind: MetricKind
    recorded_at: datetime
    value: float


class DailyMetricSample(EngineModel):
    """One normalized value per metric kind and local day."""

    date: date
    kind: MetricKind
    value: float


class EffortSplit(EngineModel):
    """A contiguous segment of a workout."""

    duration_seconds: float = Field(gt=0)
    power: float | None = Field(default=None, ge=0)
    speed: float | None = Field(default=None, ge=0, description="Metres per second.")
    heart_rate: float | None = Field(default=None, ge=0)


class WorkoutRecord(EngineModel):
    """A workout as reported by a single source system."""

    id: str
    source: SourceSystem
    start_time: datetime
    duration_seconds: float
    activity_type: ActivityType = ActivityType.OTHER
    distance_meters: float | None = None
    average_power: float | None = None
    average_heart_rate: float | None = None
    energy_kcal: float | None = None
    splits: tuple[EffortSplit, ...] = ()

    @field_validator("duration_seconds")
    @classmethod
    def validate_duration(cls, value: float) -> float:
        if value <= 0:
            raise InvalidRangeError(f"Workout duration must be positive, got {value}", duration=value)
        return value

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(seconds=self.duration_seconds)


class UnifiedWorkout(EngineModel):
    """A workout after cross-source reconciliation."""

    source_attribution: SourceAttribution
    date: date
    start_time: datetime
    activity_type: ActivityType
    duration_seconds: float
    distance_meters: float | None = None
    power: float | None = None
    heart_rate: float | None = None
    energy_kcal: float | None = None
    device_id: str | None = None
    third_party_id: str | None = None
    splits: tuple[EffortSplit, ...] = ()

    @property
    def reference(self) -> str:
        return self.third_party_id or self.device_id or ""

    @property
    def speed(self) -> float | None:
        """Average speed in metres per second, when distance is known."""
        if not self.distance_meters or self.duration_seconds <= 0:
            return None
        return self.distance_meters / self.duration_seconds


class MatchedPair(EngineModel):
    device: WorkoutRecord
    third_party: WorkoutRecord
    start_delta_seconds: float


class UnifiedWorkoutSet(EngineModel):
    workouts: tuple[UnifiedWorkout, ...] = ()
    device_only: tuple[WorkoutRecord, ...] = ()
    third_party_only: tuple[WorkoutRecord, ...] = ()
    matched: tuple[MatchedPair, ...] = ()

    def source_streams(self) -> tuple[list[WorkoutRecord], list[WorkoutRecord]]:
        """Recover the (device, third-party) input streams this set was built from."""
        device = list(self.device_only) + [pair.device for pair in self.matched]
        third_party = list(self.third_party_only) + [pair.third_party for pair in self.matched]
        device.sort(key=lambda record: (record.start_time, record.id))
        third_party.sort(key=lambda record: (record.start_time, record.id))
        return device, third_party


# Load

class DailyTrainingLoad(EngineModel):
    date: date
    training_stress_score: float = Field(ge=0)
    rolling_acute: float
    rolling_chronic: float
    rolling_ratio: RatioResult
    ewma_acute: float
    ewma_chronic: float
    ewma_ratio: RatioResult
    status: LoadStatus
    recommendation: str
    monotony: float
    monotony_confidence: Confidence
    strain: float
    acute_known_days: int
    chronic_known_days: int


# Injury risk

class RiskFactor(EngineModel):
    category: RiskCategory
    severity: int = Field(ge=0, le=10)
    description: str


class InjuryRiskAssessment(EngineModel):
    as_of: date
    score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    load_risk: int = Field(ge=0, le=40)
    recovery_risk: int = Field(ge=0, le=30)
    trend_risk: int = Field(ge=0, le=20)
    monotony_risk: int = Field(ge=0, le=10)
    contributing_factors: tuple[RiskFactor, ...] = ()
    recommendation: str

    @model_validator(mode="after")
    def check_invariants(self) -> "InjuryRiskAssessment":
        total = self.load_risk + self.recovery_risk + self.trend_risk + self.monotony_risk
        if self.score != total:
            raise ValueError(f"Risk score {self.score} does not equal sub-score total {total}")
        if self.risk_level != risk_level_for(self.score):
            raise ValueError(f"Risk level {self.risk_level.value} does not match score {self.score}")
        return self


def risk_level_for(score: int, moderate: int = 25, high: int = 45, very_high: int = 65) -> RiskLevel:
    """Map a total injury-risk score onto its level band."""
    if score < moderate:
        return RiskLevel.LOW
    if score < high:
        return RiskLevel.MODERATE
    if score < very_high:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


# Readiness

class ReadinessBreakdown(EngineModel):
    recovery_score: int = Field(ge=0, le=40)
    fitness_score: int = Field(ge=0, le=30)
    fatigue_score: int = Field(ge=0, le=30)
    recovery_details: str
    fitness_details: str
    fatigue_details: str


class ReadinessScore(EngineModel):
    as_of: date
    score: int = Field(ge=0, le=100)
    trend: ReadinessTrend
    confidence: Confidence
    breakdown: ReadinessBreakdown
    recommendation: str
    projected_score: int | None = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def check_total(self) -> "ReadinessScore":
        b = self.breakdown
        total = b.recovery_score + b.fitness_score + b.fatigue_score
        if self.score != total:
            raise ValueError(f"Readiness score {self.score} does not equal component total {total}")
        if self.confidence == Confidence.BUILDING:
            raise ValueError("Readiness confidence is high, medium or low")
        return self


# Zones

class ZoneBucket(EngineModel):
    number: int = Field(ge=1, le=7)
    name: str
    lower_pct: float
    upper_pct: float | None
    time_in_zone_seconds: float = Field(ge=0)
    percent_of_total: float = Field(ge=0)


class TrainingBalance(EngineModel):
    model: TrainingModel
    actual_easy_pct: float
    actual_moderate_pct: float
    actual_hard_pct: float
    target_easy_pct: float
    target_moderate_pct: float
    target_hard_pct: float
    deviation: float
    matches_model: bool
    recommendation: str


class EfficiencyTrend(EngineModel):
    current: float
    thirty_day_change_pct: float | None
    trend: TrendDirection
    basis: Literal["power", "pace"]
    interpretation: str


class DecouplingRecord(EngineModel):
    date: date
    workout_reference: str
    decoupling_pct: float
    severity: DecouplingSeverity


class ZoneAnalysis(EngineModel):
    activity_type: ActivityType
    functional_threshold: float | None
    threshold_unit: str | None
    threshold_method: str
    zones: tuple[ZoneBucket, ...]
    training_balance: TrainingBalance
    efficiency_trend: Annotated[
        Union[Computed[EfficiencyTrend], InsufficientData],
        Field(discriminator="kind"),
    ]
    recent_decoupling: tuple[DecouplingRecord, ...] = ()
    confidence: Confidence

    @field_validator("zones")
    @classmethod
    def check_zone_count(cls, zones: tuple[ZoneBucket, ...]) -> tuple[ZoneBucket, ...]:
        if len(zones) != 7:
            raise ValueError("Zone analysis carries exactly seven zones")
        return zones


# Fitness

class FitnessProjection(EngineModel):
    slope_per_day: float
    projected_in_30_days: float
    projected_in_90_days: float
    measurements: int


class FitnessAge(EngineModel):
    chronological_age: int
    fitness_age: int
    percentile: float
    classification: str


class FitnessBalance(EngineModel):
    """Aerobic (VO2max) versus anaerobic (high-intensity frequency) development."""

    aerobic_score: float = Field(ge=0, le=100)
    anaerobic_score: float = Field(ge=0, le=100)
    balance: BalanceType
    recommendation: str


class TrainingEffectiveness(EngineModel):
    """How well recent training volume has translated into fitness."""

    score: int = Field(ge=0, le=100)
    interpretation: str
    weekly_hours: float
    load_to_fitness_ratio: float
    optimal_weekly_hours: tuple[float, float]
    insights: tuple[str, ...] = ()


class FitnessAnalysis(EngineModel):
    as_of: date
    current_value: float
    thirty_day_change: float
    ninety_day_change: float
    year_over_year_change: float | None = None
    trend: FitnessTrend
    measurement_confidence: Confidence
    fitness_age: FitnessAge | None = None
    projection: Annotated[
        Union[Computed[FitnessProjection], InsufficientData],
        Field(discriminator="kind"),
    ]
    estimated_ceiling: float | None = None
    percent_of_ceiling: float | None = None
    time_to_plateau: str | None = None
    balance: FitnessBalance
    effectiveness: Annotated[
        Union[Computed[TrainingEffectiveness], InsufficientData],
        Field(discriminator="kind"),
    ]
    recommendations: tuple[str, ...] = ()


# Reports

class AnalysisReport(BaseModel):
    """Outcome of running every component for one day."""

    as_of: date
    load: list[DailyTrainingLoad] | None = None
    injury_risk: InjuryRiskAssessment | None = None
    readiness: ReadinessScore | None = None
    zones: dict[str, ZoneAnalysis] = {}
    fitness: FitnessAnalysis | InsufficientData | None = None
    reconciliation: UnifiedWorkoutSet | None = None
    errors: dict[str, str] = {}
