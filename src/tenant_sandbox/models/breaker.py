from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BreakerPhase(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class BreakerOptions(BaseModel):
    """Tunable thresholds for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Consecutive probe successes that close it again.
        reset_timeout_ms: Cool-down before the circuit lets probes through.
        half_open_max_attempts: Probe budget while half-open.
        on_state_change: Optional callback invoked when the phase flips.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=3, ge=1)
    reset_timeout_ms: int = Field(default=60_000, ge=0)
    half_open_max_attempts: int = Field(default=3, ge=1)
    on_state_change: Callable[[BreakerPhase], None] | None = None


class BreakerStats(BaseModel):
    name: str
    phase: BreakerPhase
    consecutive_failures: int
    consecutive_successes: int
    half_open_probes_used: int
    last_failure_time: float | None = None
    last_success_time: float | None = None
    retry_after_ms: int = 0
