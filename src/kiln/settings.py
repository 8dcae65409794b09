"""Runtime settings for the verification and retry service."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

_ENV_PREFIX = "KILN_"


def read_env_file(path: Path) -> dict[str, str]:
    """Parse ``KEY=value`` lines from a dotenv file, ignoring comments and ``export``."""
    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        line = line.removeprefix("export ").strip()

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        values[key] = value
    return values


def find_env_file(start: Path | None = None) -> Path | None:
    base = start or Path.cwd()
    for directory in [base, *base.parents]:
        candidate = directory / ".env"
        if candidate.is_file():
            return candidate
    return None


class KilnSettings(BaseModel):
    """Policy constants, per-call timeouts and collaborator endpoints."""

    # Retry budget
    max_cycles: int = Field(default=5, ge=1, le=20, description="Build cycles before escalation")

    # Smoke testing
    smoke_max_attempts: int = Field(default=3, ge=1, le=10)
    smoke_backoff_s: float = Field(default=2.0, ge=0.0, description="Linear backoff unit")
    settle_delay_s: float = Field(default=3.0, ge=0.0, description="Cold-start wait per artifact")

    # Policy constants
    numeric_relative_tolerance: float = Field(default=0.2, ge=0.0)
    numeric_absolute_tolerance: float = Field(default=5.0, ge=0.0)
    ux_pass_threshold: float = Field(default=6.0, ge=1.0, le=10.0)

    # Per-call timeouts
    invoke_timeout_s: float = Field(default=30.0, gt=0.0, le=600.0)
    judge_timeout_s: float = Field(default=120.0, gt=0.0, le=600.0)
    probe_timeout_s: float = Field(default=90.0, gt=0.0, le=600.0)
    notify_timeout_s: float = Field(default=10.0, gt=0.0, le=120.0)
    dispatch_timeout_s: float = Field(default=15.0, gt=0.0, le=120.0)

    # Judge model
    judge_model: str = "gpt-4o"
    judge_provider: str = "openai"
    judge_api_base: str | None = None
    judge_api_key: str | None = None
    fidelity_max_tokens: int = Field(default=500, gt=0, le=32768)
    ux_max_tokens: int = Field(default=800, gt=0, le=32768)

    # Collaborators; unset means not configured
    visual_probe_url: str | None = None
    rebuild_url: str | None = None
    notify_webhook_url: str | None = None
    conversation_url: str | None = Field(default=None, description="Base URL serving conversation messages")
    lessons_url: str | None = Field(default=None, description="Endpoint that stores extracted lessons")

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        env_file: Path | None = None,
    ) -> "KilnSettings":
        """Build settings from ``KILN_*`` variables; the process environment wins over ``.env``."""
        merged: dict[str, str] = {}
        dotenv_path = env_file or find_env_file()
        if dotenv_path is not None and dotenv_path.is_file():
            merged.update(read_env_file(dotenv_path))
        merged.update(os.environ if environ is None else environ)

        fields: dict[str, object] = {}
        for name in cls.model_fields:
            raw = merged.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            fields[name] = raw
        return cls.model_validate(fields)
