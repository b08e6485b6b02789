"""Configuration management using Pydantic BaseSettings.

This module provides centralized configuration management with validation,
type safety, and sensible defaults for the dedup engine. Every field can be
overridden through a ``DEDUP_``-prefixed environment variable or a ``.env``
file (e.g. ``DEDUP_WARNING_THRESHOLD=0.85``).
"""
from typing import Any, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Main configuration class for the dedup engine."""

    # Detection thresholds
    exact_match_threshold: float = Field(0.95, ge=0.0, le=1.0, description="Similarity above which two parameter sets are duplicates")
    warning_threshold: float = Field(0.90, ge=0.0, le=1.0, description="Similarity above which the user is warned about a near-duplicate")
    max_differences: int = Field(5, ge=0, le=50, description="Max differences reported to the user")
    candidate_limit: int = Field(10, ge=1, le=500, description="Max prior records compared per check")

    # Detection behaviour
    detection_enabled: bool = Field(True, description="Run duplicate detection before generation")
    show_warnings: bool = Field(True, description="Surface near-duplicate warnings to the user")
    auto_use_cache: bool = Field(False, description="Serve cached results without asking the user")

    # Validation
    max_parameter_bytes: int = Field(1_000_000, ge=1024, le=50_000_000, description="Max serialized parameter size in bytes")

    # Retention and reporting
    cleanup_default_days: int = Field(30, ge=0, le=3650, description="Default age for duplicate cleanup")
    estimated_tokens_per_call: int = Field(500, ge=0, description="Estimated tokens spent per generation")
    estimated_cost_per_call: float = Field(0.002, ge=0.0, description="Estimated cost per generation")

    # Record store
    store_backend: str = Field("memory", description="Record store backend: redis, file, memory")
    store_redis_url: str = Field("redis://localhost:6379", description="Redis connection URL")
    store_file_path: str = Field(".dedup_cache/records.json", description="File store location")
    store_key_prefix: str = Field("analysis-dedup:", description="Redis key prefix")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_format: str = Field("%(asctime)s - %(name)s - %(levelname)s - %(message)s", description="Log format")

    model_config = SettingsConfigDict(
        env_prefix="DEDUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('store_backend')
    @classmethod
    def validate_store_backend(cls, v):
        if v.lower() not in ['redis', 'file', 'memory']:
            raise ValueError('store_backend must be "redis", "file", or "memory"')
        return v.lower()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Invalid log level: {v}. Valid options: {valid_levels}')
        return v.upper()

    def validate_configuration(self) -> List[str]:
        """Validate the complete configuration and return any issues."""
        issues = []

        if self.warning_threshold > self.exact_match_threshold:
            issues.append("WARNING_THRESHOLD above EXACT_MATCH_THRESHOLD, near-duplicates will never warn")

        if self.warning_threshold < 0.5:
            issues.append("WARNING_THRESHOLD is very low, may flag many false duplicates")

        if self.store_backend == "redis" and not self.store_redis_url.startswith(("redis://", "rediss://")):
            issues.append("STORE_REDIS_URL must be a valid Redis URL (redis://...)")

        if self.store_backend == "memory":
            issues.append("STORE_BACKEND=memory keeps records only for the lifetime of the process")

        return issues

    def store_settings(self) -> Dict[str, Any]:
        """Return the store section as a plain dict for the store factory."""
        return {
            "backend": self.store_backend,
            "redis_url": self.store_redis_url,
            "file_path": self.store_file_path,
            "key_prefix": self.store_key_prefix,
        }

    def log_configuration(self) -> None:
        """Log the current configuration (sanitized)."""
        from analysis_dedup.utils.logger import log_info

        log_info("Configuration loaded",
                 detection_enabled=self.detection_enabled,
                 exact_match_threshold=self.exact_match_threshold,
                 warning_threshold=self.warning_threshold,
                 candidate_limit=self.candidate_limit,
                 store_backend=self.store_backend,
                 cleanup_default_days=self.cleanup_default_days,
                 log_level=self.log_level)


# Global configuration instance (lazy loading)
_config = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment variables."""
    global _config
    _config = Config()
    return _config
