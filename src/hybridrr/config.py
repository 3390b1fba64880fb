"""Tunable constants of the hybrid round-robin scheduler."""

from typing import List, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field, model_validator


class ThresholdTier(BaseModel):
    """A row of the rebalancing threshold table."""

    model_config = {"frozen": True}

    max_population: Optional[int] = Field(
        default=None,
        description="Largest task population this row applies to (None for no limit).",
    )
    relative: float = Field(
        ..., ge=0, description="Threshold as a fraction of the average load."
    )
    minimum: float = Field(..., ge=0, description="Smallest absolute threshold.")


class QuantumBounds(BaseModel):
    """Clamping interval for a computed quantum."""

    model_config = {"frozen": True}

    lower: float = Field(..., ge=0, description="Smallest allowed quantum.")
    upper: float = Field(..., ge=0, description="Largest allowed quantum.")

    @model_validator(mode="after")
    def check_order(self) -> "QuantumBounds":
        if self.lower > self.upper:
            raise ValueError(f"Lower bound {self.lower} exceeds upper bound {self.upper}.")
        return self

    def clamp(self, value: float) -> float:
        return max(self.lower, min(self.upper, value))


class QuantumTier(BaseModel):
    """A row of the per-worker quantum bounds table."""

    model_config = {"frozen": True}

    max_population: Optional[int] = Field(
        default=None,
        description="Largest task population this row applies to (None for no limit).",
    )
    bounds: QuantumBounds = Field(..., description="The bounds used for this row.")


DEFAULT_THRESHOLD_TIERS = [
    ThresholdTier(max_population=100, relative=0.20, minimum=1),
    ThresholdTier(max_population=1000, relative=0.15, minimum=2),
    ThresholdTier(max_population=10000, relative=0.10, minimum=5),
    ThresholdTier(max_population=40000, relative=0.05, minimum=10),
    ThresholdTier(max_population=None, relative=0.02, minimum=20),
]

DEFAULT_QUANTUM_TIERS = [
    QuantumTier(max_population=100, bounds=QuantumBounds(lower=50, upper=300)),
    QuantumTier(max_population=1000, bounds=QuantumBounds(lower=75, upper=400)),
    QuantumTier(max_population=None, bounds=QuantumBounds(lower=100, upper=500)),
]

T = TypeVar("T", ThresholdTier, QuantumTier)


def select_tier(tiers: Sequence[T], population: int) -> T:
    """Get the first row whose population bound is not exceeded.

    Args:
        tiers (Sequence[T]): The table, ordered by increasing bound.
        population (int): The task population.

    Returns:
        T: The selected row. The last row is used when every bound is exceeded.

    Raises:
        ValueError: If the table is empty.
    """
    if not tiers:
        raise ValueError("Tier table is empty.")
    for tier in tiers:
        if tier.max_population is None or population <= tier.max_population:
            return tier
    return tiers[-1]


class SchedulerConfig(BaseModel):
    """Configuration for the hybrid round-robin scheduler."""

    model_config = {"frozen": True}

    # weights
    idle_bonus: float = Field(default=1.2, gt=0, description="Weight multiplier for idle workers.")
    overload_load: int = Field(
        default=10, ge=0, description="Load above which the overload penalty applies."
    )
    overload_penalty: float = Field(
        default=1.5, gt=0, description="Weight divisor for overloaded workers."
    )

    # placement
    batch_divisor: int = Field(
        default=10, gt=0, description="Tasks are placed in batches of count // batch_divisor."
    )

    # batch rebalancing
    max_rebalance_passes: int = Field(
        default=3, ge=0, description="Maximum number of batch rebalancing passes."
    )
    threshold_tiers: List[ThresholdTier] = Field(
        default_factory=lambda: list(DEFAULT_THRESHOLD_TIERS),
        description="Scale-tiered rebalancing thresholds.",
    )

    # runtime monitoring
    monitor_threshold: float = Field(
        default=0.3, ge=0, description="Monitor threshold as a fraction of the average load."
    )
    monitor_max_migrations: int = Field(
        default=2, ge=0, description="Maximum migrations per monitor cycle."
    )

    # quantum
    default_quantum: float = Field(
        default=100.0, ge=0, description="Quantum used when there are no burst times."
    )
    quantum_tiers: List[QuantumTier] = Field(
        default_factory=lambda: list(DEFAULT_QUANTUM_TIERS),
        description="Scale-tiered per-worker quantum bounds.",
    )
    system_quantum_bounds: QuantumBounds = Field(
        default_factory=lambda: QuantumBounds(lower=50, upper=500),
        description="Bounds for the system-wide quantum.",
    )

    @model_validator(mode="after")
    def check_tables(self) -> "SchedulerConfig":
        if not self.threshold_tiers:
            raise ValueError("threshold_tiers must not be empty.")
        if not self.quantum_tiers:
            raise ValueError("quantum_tiers must not be empty.")
        return self
