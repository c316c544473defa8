"""
Validated engine parameters.

Built from libs.config.Config (environment) at start-up, or directly in
tests. Every tunable of the risk model and the search lives here rather than
in the algorithms.
"""

from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.constants import CRIME_TYPE_WEIGHTS, RECENCY_BUCKETS, RECENCY_FLOOR
from libs.config import Config


class RiskParameters(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    radius_m: float = Field(50.0, gt=0)
    multiplier: float = Field(100.0, ge=0)
    falloff: Literal["gaussian", "inverse", "flat"] = "gaussian"
    sigma_m: float = Field(25.0, gt=0)
    type_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(CRIME_TYPE_WEIGHTS)
    )
    recency_buckets: tuple[tuple[float, float], ...] = RECENCY_BUCKETS
    recency_floor: float = Field(RECENCY_FLOOR, ge=0)

    @field_validator("type_weights")
    @classmethod
    def _non_negative_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        bad = [name for name, weight in v.items() if weight < 0]
        if bad:
            raise ValueError(f"crime type weights must be >= 0: {bad}")
        return v

    @field_validator("recency_buckets")
    @classmethod
    def _sorted_buckets(cls, v):
        ages = [age for age, _ in v]
        if ages != sorted(ages):
            raise ValueError("recency buckets must be sorted by age")
        if any(factor < 0 for _, factor in v):
            raise ValueError("recency factors must be >= 0")
        return v


class AlternativeParameters(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    count: int = Field(3, ge=0, le=10)
    overlap_threshold: float = Field(0.5, gt=0, le=1)
    penalty_factor: float = Field(10.0, gt=1)
    attempt_multiplier: int = Field(3, ge=1)
    stop_on_rejection: bool = True


class EngineSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    risk: RiskParameters = Field(default_factory=RiskParameters)
    alternatives: AlternativeParameters = Field(default_factory=AlternativeParameters)
    max_snap_m: float = Field(500.0, gt=0)
    proximity_m: float = Field(50.0, ge=0)
    budget_ms: int = Field(5000, gt=0)
    max_expansions: int = Field(2_000_000, gt=0)
    lookback_days: int = Field(90, gt=0)

    @classmethod
    def from_config(cls, cfg: Config) -> "EngineSettings":
        return cls(
            risk=RiskParameters(
                radius_m=cfg.RISK_RADIUS_M,
                multiplier=cfg.RISK_MULTIPLIER,
                falloff=cfg.RISK_FALLOFF,
                sigma_m=cfg.RISK_SIGMA_M,
            ),
            alternatives=AlternativeParameters(
                count=cfg.ALTERNATIVES,
                overlap_threshold=cfg.OVERLAP_THRESHOLD,
                penalty_factor=cfg.PENALTY_FACTOR,
                attempt_multiplier=cfg.ATTEMPT_MULTIPLIER,
                stop_on_rejection=cfg.STOP_ON_REJECTION,
            ),
            max_snap_m=cfg.MAX_SNAP_M,
            proximity_m=cfg.PROXIMITY_M,
            budget_ms=cfg.BUDGET_MS,
            max_expansions=cfg.MAX_EXPANSIONS,
            lookback_days=cfg.LOOKBACK_DAYS,
        )
