"""
gatehouse.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the non-secret guild settings: branding, the
guild and whitelist role snowflakes, the admin allow-list, and the audio
retention window.  Secrets (bot token, OAuth credentials, JWT and cleanup
secrets) stay in the environment and are read where they are used.

Usage::

    from gatehouse.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Gatehouse Dev"
    print(cfg.admin_ids)         # frozenset({123456789012345678})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from gatehouse.constants import DEFAULT_AUDIO_RETENTION_DAYS


@dataclass(frozen=True, slots=True)
class GatehouseConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Branding (shown in DMs)
    community_name: str

    # Discord
    guild_id: int
    whitelist_role_id: int

    # Discord user ids that receive ``is_admin`` at login
    admin_ids: frozenset[int] = field(default_factory=frozenset)

    audio_retention_days: int = DEFAULT_AUDIO_RETENTION_DAYS


def _parse_admin_ids(raw) -> frozenset[int]:
    """Accept a YAML list or a comma-separated string of snowflakes."""
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = [part for part in raw.split(",") if part.strip()]
    return frozenset(int(str(value).strip()) for value in raw)


def load_config(path: str | Path = "config.yaml") -> GatehouseConfig:
    """Read *path* and return a :class:`GatehouseConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return GatehouseConfig(
        community_name=raw.get("community_name") or "Our Server",
        guild_id=int(raw["guild_id"]),
        whitelist_role_id=int(raw["whitelist_role_id"]),
        admin_ids=_parse_admin_ids(raw.get("admin_ids")),
        audio_retention_days=int(
            raw.get("audio_retention_days", DEFAULT_AUDIO_RETENTION_DAYS)
        ),
    )
