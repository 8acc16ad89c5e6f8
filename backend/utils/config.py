"""
Configuration settings for the mock interview backend.
All settings can be overridden via environment variables.
"""
import os
from typing import Dict
from dataclasses import dataclass, field


@dataclass
class ServiceConfig:
    """Question generation / scoring API configuration."""
    base_url: str = field(default_factory=lambda: os.getenv(
        "INTERVIEW_API_URL", "https://resume-parser-api-oxht.onrender.com"
    ))
    questions_endpoint: str = "/generate-questions"
    scoring_endpoint: str = "/score-answers"
    timeout: int = field(default_factory=lambda: int(os.getenv("INTERVIEW_API_TIMEOUT", "60")))
    max_retries: int = 2
    backoff_seconds: float = 0.5


@dataclass
class WhisperConfig:
    """Whisper STT configuration."""
    model_path: str = field(default_factory=lambda: os.getenv("WHISPER_MODEL_PATH", "base"))
    device: str = field(default_factory=lambda: os.getenv("WHISPER_DEVICE", "cpu"))
    compute_type: str = field(default_factory=lambda: os.getenv("WHISPER_COMPUTE_TYPE", "int8"))
    audio_suffix: str = ".webm"


@dataclass
class StorageConfig:
    """Durable store configuration."""
    database_url: str = field(default_factory=lambda: os.getenv(
        "DATABASE_URL", "sqlite:///./interviews.db"
    ))
    echo: bool = False


@dataclass
class InterviewConfig:
    """Interview flow configuration."""

    # Seconds allowed per question, keyed by difficulty
    time_limits: Dict[str, int] = field(default_factory=lambda: {
        "easy": 20,
        "medium": 60,
        "hard": 120,
    })
    default_time_limit: int = 60

    tick_interval_seconds: float = 1.0
    timeout_sentinel: str = "No answer provided (time expired)"

    # "fresh" grants a full timer on resume, "preserve" keeps the time already used
    resume_policy: str = field(default_factory=lambda: os.getenv("RESUME_POLICY", "fresh"))

    # Fallback score = avg_chars / chars_per_unit * slope + base, clamped to 0-100
    fallback_chars_per_unit: float = 50.0
    fallback_slope: float = 60.0
    fallback_base: float = 20.0

    technology: str = field(default_factory=lambda: os.getenv("INTERVIEW_TECHNOLOGY", "React.js"))


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Config:
    """Main configuration class combining all config sections."""

    def __init__(self):
        self.service = ServiceConfig()
        self.whisper = WhisperConfig()
        self.storage = StorageConfig()
        self.interview = InterviewConfig()
        self.logging = LoggingConfig()


# Global config instance
config = Config()
