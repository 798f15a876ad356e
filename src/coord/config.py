"""Configuration for coord.

Config discovery (first match wins):
  1. explicit path passed to :func:`load_config`
  2. ``./coord.yaml``
  3. ``~/.config/coord/config.yaml``
  4. Built-in defaults

Example::

    profile: local
    profiles:
      local:
        provider: openai
        url: http://localhost:11434/v1
        model: qwen3-8b
        softcall: true
      claude:
        provider: anthropic
        api_key: env:ANTHROPIC_API_KEY
        model: claude-sonnet-4-5
        generation:
          max_output_tokens: 4096
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class GenerationConfig:
    """Sampling and prompt options passed to a provider."""

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int | None = None
    stop_sequences: list[str] = field(default_factory=list)
    system_instruction: str = ""
    thinking_budget: int | None = None


@dataclass
class ProfileSpec:
    """A named provider + model combination.

    ``softcall`` wraps the model in the tool-call emulator, for upstreams
    without native tool support.
    """

    provider: str = "openai"
    url: str = ""
    api_key: str = ""
    model: str = ""
    softcall: bool = False
    preserve_reasoning: bool = False
    timeout: float = 120
    extra_params: dict[str, Any] = field(default_factory=dict)
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    def resolved_api_key(self) -> str:
        """``api_key`` with an ``env:NAME`` reference looked up."""
        if self.api_key.startswith("env:"):
            return os.environ.get(self.api_key[4:], "")
        return self.api_key


@dataclass
class CoordConfig:
    """Top-level config."""

    profile: str = "local"
    profiles: dict[str, ProfileSpec] = field(
        default_factory=lambda: {"local": ProfileSpec()}
    )

    @property
    def active_profile(self) -> ProfileSpec:
        return self.profiles.get(self.profile, ProfileSpec())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./coord.yaml"),
    Path.home() / ".config" / "coord" / "config.yaml",
]


def _parse_generation(raw: dict[str, Any] | None) -> GenerationConfig:
    if not raw:
        return GenerationConfig()
    known = {
        k: v for k, v in raw.items()
        if v is not None and k in GenerationConfig.__dataclass_fields__
    }
    unknown = {k for k in raw if k not in GenerationConfig.__dataclass_fields__}
    if unknown:
        _logger.warning("Ignoring unknown generation options: %s", ", ".join(sorted(unknown)))
    return GenerationConfig(**known)


def _parse_profile(raw: dict[str, Any]) -> ProfileSpec:
    return ProfileSpec(
        provider=raw.get("provider", "openai"),
        url=raw.get("url", ""),
        api_key=raw.get("api_key", ""),
        model=raw.get("model", ""),
        softcall=bool(raw.get("softcall", False)),
        preserve_reasoning=bool(raw.get("preserve_reasoning", False)),
        timeout=raw.get("timeout", 120),
        extra_params=raw.get("extra_params", {}) or {},
        generation=_parse_generation(raw.get("generation")),
    )


def load_config(path: str | Path | None = None) -> CoordConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    CoordConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return CoordConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return CoordConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    profiles: dict[str, ProfileSpec] = {}
    for name, praw in (raw.get("profiles") or {}).items():
        profiles[name] = _parse_profile(praw or {})

    if not profiles:
        profiles["local"] = ProfileSpec()

    return CoordConfig(
        profile=raw.get("profile", "local"),
        profiles=profiles,
    )
