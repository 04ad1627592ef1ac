"""Resolver settings loaded from the environment."""

from __future__ import annotations

from typing import Mapping, Optional
import os

from pydantic import BaseModel, ConfigDict

RESOLVE_DUNDER_NAMES_ENV = "OPFORGE_RESOLVE_DUNDER_NAMES"
LOG_RESOLUTIONS_ENV = "OPFORGE_LOG_RESOLUTIONS"

_TRUTHY = {"1", "true", "yes", "on"}


class ResolverSettings(BaseModel):
    """Process-wide switches for the resolver."""

    model_config = ConfigDict(frozen=True)

    # Dunder lookups are how Python probes for optional protocol hooks
    # (copy, pickle, ...); they are left alone unless this is set.
    resolve_dunder_names: bool = False
    # Log each installed operation at INFO instead of DEBUG.
    log_resolutions: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ResolverSettings":
        env = os.environ if environ is None else environ
        return cls(
            resolve_dunder_names=_flag(env.get(RESOLVE_DUNDER_NAMES_ENV, "")),
            log_resolutions=_flag(env.get(LOG_RESOLUTIONS_ENV, "")),
        )


def _flag(raw: str) -> bool:
    return raw.strip().lower() in _TRUTHY


_settings: Optional[ResolverSettings] = None
"""Global settings instance, created lazily from the environment."""


def get_settings() -> ResolverSettings:
    """Return the global settings, reading the environment on first use."""
    global _settings

    if _settings is None:
        _settings = ResolverSettings.from_env()
    return _settings


def set_settings(settings: Optional[ResolverSettings]) -> None:
    """Replace the global settings; ``None`` re-reads the environment on next use."""
    global _settings
    _settings = settings
