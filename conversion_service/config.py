from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

MEGABYTE = 1024 * 1024


class ConfigurationError(RuntimeError):
    """Raised when the environment yields an unusable configuration."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() != "false"


def _environment() -> str:
    return os.getenv("APP_ENV", "production").lower()


def _default_rate_limit_enabled() -> bool:
    # The test profile runs without limiting unless explicitly switched on.
    return _env_flag("RATE_LIMIT_ENABLED", _environment() != "test")


def _default_rate_limit_max() -> int:
    return _env_int("RATE_LIMIT_MAX", 1000 if _environment() == "development" else 100)


def _csv(name: str, default: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(name, default).split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to FastAPI components."""

    app_name: str = "conversion-service"
    version: str = "2.0.0"
    environment: str = field(default_factory=_environment)
    http_host: str = field(default_factory=lambda: os.getenv("HTTP_HOST", "0.0.0.0"))
    http_port: int = field(default_factory=lambda: _env_int("HTTP_PORT", 3000))
    trust_proxy: bool = field(default_factory=lambda: _env_flag("TRUST_PROXY", False))
    api_base_path: str = field(default_factory=lambda: os.getenv("API_BASE_PATH", "/api"))
    cors_origins: tuple[str, ...] = field(default_factory=lambda: _csv("CORS_ORIGINS", "*"))

    max_file_size: int = field(default_factory=lambda: _env_int("MAX_FILE_SIZE", 50 * MEGABYTE))
    max_files_per_request: int = field(default_factory=lambda: _env_int("MAX_FILES_PER_REQUEST", 10))
    max_total_size: int = field(default_factory=lambda: _env_int("MAX_TOTAL_SIZE", 200 * MEGABYTE))

    python_executable: str = field(
        default_factory=lambda: os.getenv("PYTHON_EXECUTABLE", sys.executable)
    )
    python_module: str = field(default_factory=lambda: os.getenv("PYTHON_MODULE", "pdf2docx.main"))
    python_command: str = field(default_factory=lambda: os.getenv("PYTHON_COMMAND", "convert"))
    conversion_timeout_ms: int = field(
        default_factory=lambda: _env_int("CONVERSION_TIMEOUT", 5 * 60 * 1000)
    )

    uploads_dir: Path = field(default_factory=lambda: Path(os.getenv("UPLOADS_DIR", "uploads")))
    outputs_dir: Path = field(default_factory=lambda: Path(os.getenv("OUTPUTS_DIR", "outputs")))
    cleanup_interval_ms: int = field(
        default_factory=lambda: _env_int("CLEANUP_INTERVAL", 24 * 60 * 60 * 1000)
    )
    max_file_age_ms: int = field(
        default_factory=lambda: _env_int("MAX_FILE_AGE", 7 * 24 * 60 * 60 * 1000)
    )

    rate_limit_enabled: bool = field(default_factory=_default_rate_limit_enabled)
    rate_limit_window_ms: int = field(
        default_factory=lambda: _env_int("RATE_LIMIT_WINDOW", 15 * 60 * 1000)
    )
    rate_limit_max_requests: int = field(default_factory=_default_rate_limit_max)
    rate_limit_sweep_interval_ms: int = field(
        default_factory=lambda: _env_int("RATE_LIMIT_SWEEP_INTERVAL", 15 * 60 * 1000)
    )
    rate_limit_shards: int = field(default_factory=lambda: _env_int("RATE_LIMIT_SHARDS", 16))
    rate_limit_backend: str = field(
        default_factory=lambda: os.getenv("RATE_LIMIT_BACKEND", "memory").lower()
    )
    redis_url: str = field(default_factory=lambda: os.getenv("REDIS_URL", ""))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    enable_request_logging: bool = field(
        default_factory=lambda: _env_flag("ENABLE_REQUEST_LOGGING", True)
    )
    admin_token: str = field(default_factory=lambda: os.getenv("ADMIN_TOKEN", ""))

    def validate(self) -> list[str]:
        """Return human-readable problems with the configured values."""
        errors: list[str] = []
        if not 1 <= self.http_port <= 65535:
            errors.append("Invalid server port: must be between 1 and 65535")
        if self.max_file_size <= 0:
            errors.append("Invalid max file size: must be greater than 0")
        if self.max_files_per_request <= 0:
            errors.append("Invalid max files per request: must be greater than 0")
        if self.max_total_size <= 0:
            errors.append("Invalid max total size: must be greater than 0")
        if self.max_total_size < self.max_file_size:
            errors.append("Max total size must be greater than or equal to max file size")
        if self.conversion_timeout_ms <= 0:
            errors.append("Invalid conversion timeout: must be greater than 0")
        if self.rate_limit_enabled:
            if self.rate_limit_window_ms <= 0:
                errors.append("Invalid rate limit window: must be greater than 0")
            if self.rate_limit_max_requests <= 0:
                errors.append("Invalid rate limit max requests: must be greater than 0")
            if self.rate_limit_sweep_interval_ms <= 0:
                errors.append("Invalid rate limit sweep interval: must be greater than 0")
            if self.rate_limit_shards <= 0:
                errors.append("Invalid rate limit shard count: must be greater than 0")
        if self.rate_limit_backend not in {"memory", "redis"}:
            errors.append(f"Unknown rate limit backend: {self.rate_limit_backend}")
        if self.cleanup_interval_ms <= 0:
            errors.append("Invalid cleanup interval: must be greater than 0")
        if self.max_file_age_ms <= 0:
            errors.append("Invalid max file age: must be greater than 0")
        return errors

    def check(self) -> "Settings":
        """Raise :class:`ConfigurationError` when :meth:`validate` reports problems."""
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(errors)
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
