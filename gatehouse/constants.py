"""
gatehouse.constants — Shared Constants
=======================================

Presentation constants for decision DMs and the defaults shared by the
retention sweep and config loader.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Decision DM colours (Discord embed sidebar)
# ---------------------------------------------------------------------------
APPROVED_COLOR = 0x22C55E  # green
DENIED_COLOR = 0xEF4444    # red
REVISION_COLOR = 0xF59E0B  # amber

# ---------------------------------------------------------------------------
# Audio retention
# ---------------------------------------------------------------------------
DEFAULT_AUDIO_RETENTION_DAYS = 7

# ---------------------------------------------------------------------------
# Multipart field naming for application submissions
# ---------------------------------------------------------------------------
ANSWERS_FIELD = "answers"
AUDIO_FIELD_PREFIX = "audio_"
