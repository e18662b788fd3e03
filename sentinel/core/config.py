"""
Application configuration for the LLM Safety Sentinel.

Provides environment-aware settings with conservative defaults. All detection
thresholds are configurable to avoid hard-coded "magic numbers".
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DetectionThresholds(BaseModel):
	"""
	Thresholds for the detection rule set.

	Rationale:
	- Relative thresholds compare one event against the rolling baseline.
	- Absolute ceilings (cost, timeout) fire even before a baseline exists.
	"""

	token_increase_high: float = Field(2.0, ge=0.0, description="(tokens - avg) / avg for high")
	token_increase_medium: float = Field(1.5, ge=0.0, description="(tokens - avg) / avg for medium")

	cost_ceiling: float = Field(50.0, gt=0.0, description="Absolute cost per request")
	cost_increase: float = Field(3.0, ge=0.0, description="(cost - avg) / avg for high")

	latency_timeout_ms: float = Field(30_000.0, gt=0.0, description="Request timeout")
	latency_ratio_high: float = Field(2.5, ge=0.0, description="latency / avg for high")
	latency_ratio_medium: float = Field(1.5, ge=0.0, description="latency / avg for medium")

	confidence_floor: float = Field(0.3, ge=0.0, le=1.0, description="Minimum confidence score")
	error_count_limit: int = Field(10, ge=0, description="Errors per window before a spike")

	toxic_keywords: List[str] = Field(
		default_factory=lambda: [
			"hate",
			"kill",
			"harm",
			"violence",
			"abuse",
			"racist",
			"sexist",
			"slur",
			"threat",
			"terror",
			"bomb",
			"poison",
			"explicit content",
		]
	)
	injection_phrases: List[str] = Field(
		default_factory=lambda: [
			r"ignore (all )?previous( instructions)?",
			r"disregard the prompt",
			r"forget (your |all )?instructions",
			r"system override",
			r"admin mode",
			r"test mode",
			r"bypass",
			r"jailbreak",
			r"prompt injection",
			r"execute command",
			r"run code",
			r"\beval\b",
		]
	)
	uncertainty_phrases: List[str] = Field(
		default_factory=lambda: ["i am not sure", "i'm not sure", "i am uncertain", "i don't know"]
	)
	assertive_phrases: List[str] = Field(default_factory=lambda: ["the answer is"])


class BaselineConfig(BaseModel):
	"""
	Configuration for the rolling baseline.

	Notes:
	- window_size: number of recent samples per statistic.
	- error_window_minutes: look-back for the error-rate spike rule.
	"""

	window_size: int = Field(1000, ge=1)
	error_window_minutes: int = Field(5, ge=1)


class RetentionConfig(BaseModel):
	"""
	Bounds for the retained request and response windows.

	Aggregations (safety score, cost analytics) are defined over the
	retained window, not over all history.
	"""

	max_requests: int = Field(10_000, ge=1)
	max_responses: int = Field(10_000, ge=1)


class TopicNames(BaseModel):
	requests: str = "llm-requests"
	responses: str = "llm-responses"
	anomalies: str = "llm-anomalies"
	alerts: str = "llm-alerts"

	def all(self) -> List[str]:
		return [self.requests, self.responses, self.anomalies, self.alerts]


class TransportConfig(BaseModel):
	"""
	Kafka transport settings.

	bootstrap_servers unset means the in-memory transport is used.
	"""

	bootstrap_servers: Optional[str] = None
	api_key: Optional[str] = None
	api_secret: Optional[str] = None
	producer_client_id: str = "llm-producer"
	consumer_client_id: str = "llm-consumer"
	consumer_group: str = "datadog-consumer-group"
	num_partitions: int = Field(3, ge=1)
	replication_factor: int = Field(1, ge=1)
	topics: TopicNames = TopicNames()


class SinkConfig(BaseModel):
	"""Datadog observability sink settings."""

	site: str = "us5.datadoghq.com"
	api_key: Optional[str] = None
	app_key: Optional[str] = None
	metric_prefix: str = "llm_monitoring"
	timeout_seconds: float = Field(5.0, gt=0.0)


class VoiceConfig(BaseModel):
	"""ElevenLabs speech synthesis settings."""

	base_url: str = "https://api.elevenlabs.io/v1"
	api_key: Optional[str] = None
	voice_id: Optional[str] = None
	model_id: str = "eleven_monolingual_v1"
	stability: float = Field(0.5, ge=0.0, le=1.0)
	similarity_boost: float = Field(0.75, ge=0.0, le=1.0)
	timeout_seconds: float = Field(30.0, gt=0.0)


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.

	Nested values use a double underscore, e.g.
	SENTINEL_TRANSPORT__BOOTSTRAP_SERVERS=broker:9092.
	"""

	model_config = SettingsConfigDict(
		env_prefix="SENTINEL_",
		env_file=".env",
		env_nested_delimiter="__",
		extra="ignore",
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	model_path: Optional[str] = Field(None, description="Local text-generation model")

	thresholds: DetectionThresholds = DetectionThresholds()
	baseline: BaselineConfig = BaselineConfig()
	retention: RetentionConfig = RetentionConfig()
	transport: TransportConfig = TransportConfig()
	sink: SinkConfig = SinkConfig()
	voice: VoiceConfig = VoiceConfig()

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
