"""
Application configuration for the MedWatch anomaly engine.

Provides environment-aware settings with conservative defaults. Detection
thresholds, ensemble weights and scheduling intervals are configurable to avoid
hard-coded "magic numbers".
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureConfig(BaseModel):
	"""
	Feature derivation settings.

	Notes:
	- trend_window: trailing samples used for slope and volatility.
	- min_trend_points: samples required before trend features are emitted.
	- min_history_warning: histories shorter than this produce a warning.
	- price_deviation_threshold: |deviation| above this flags a price anomaly.
	- overdue_multiplier: delivery overdue when days since > multiplier x interval.
	"""

	trend_window: int = Field(7, ge=2)
	min_trend_points: int = Field(3, ge=2)
	min_history_warning: int = Field(7, ge=1)
	price_deviation_threshold: float = Field(0.2, ge=0.0)
	default_delivery_interval_days: float = Field(7.0, gt=0.0)
	overdue_multiplier: float = Field(1.5, gt=0.0)
	near_expiry_days: float = Field(30.0, ge=0.0)
	high_demand_season_factor: float = Field(1.2, gt=0.0)


class ScoringConfig(BaseModel):
	"""
	Scoring ensemble configuration.

	Rationale:
	- Weights are keyed by model id so the combined confidence does not depend
	  on the order in which scorers run.
	- isolation_seed keeps the isolation scorer reproducible.
	"""

	window_size: int = Field(7, ge=3)
	zscore_threshold: float = Field(2.5, gt=0.0)
	isolation_threshold: float = Field(0.6, ge=0.0, le=1.0)
	isolation_seed: int = 42
	price_threshold: float = Field(0.3, ge=0.0)
	price_change_window: int = Field(5, ge=2)
	min_price_points: int = Field(3, ge=2)
	demand_threshold: float = Field(0.4, ge=0.0)
	combined_threshold: float = Field(0.5, ge=0.0, le=1.0)
	detection_confidence: float = Field(0.5, ge=0.0, le=1.0)
	default_weight: float = Field(0.1, ge=0.0)

	weights: Dict[str, float] = Field(
		default_factory=lambda: {
			"time-series-anomaly": 0.3,
			"isolation-forest": 0.3,
			"price-anomaly": 0.2,
			"demand-forecast": 0.2,
		}
	)


class RuleConfig(BaseModel):
	"""
	Rule engine configuration.

	Notes:
	- load_defaults: register the shortage and price rule packs on startup.
	- finding_confidence: confidence attached to rule findings by severity.
	"""

	load_defaults: bool = True
	finding_confidence: Dict[str, float] = Field(
		default_factory=lambda: {
			"critical": 1.0,
			"high": 0.8,
		}
	)
	default_finding_confidence: float = Field(0.6, ge=0.0, le=1.0)


class DetectionConfig(BaseModel):
	"""
	Detection orchestrator configuration.
	"""

	processing_interval_seconds: float = Field(30.0, gt=0.0)
	alert_threshold: float = Field(0.7, ge=0.0, le=1.0)
	batch_size: int = Field(1000, ge=1)
	max_workers: int = Field(1, ge=1)
	enable_rule_engine: bool = True
	enable_ml_models: bool = True


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="MEDWATCH_",
		env_nested_delimiter="__",
		env_file=".env",
		extra="ignore",
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	log_max_bytes: int = Field(10 * 1024 * 1024, ge=1024, description="Rotate log files at this size")
	log_backup_count: int = Field(5, ge=0, description="Rotated log files to keep")
	features: FeatureConfig = FeatureConfig()
	scoring: ScoringConfig = ScoringConfig()
	rules: RuleConfig = RuleConfig()
	detection: DetectionConfig = DetectionConfig()

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
