"""
gatehouse.services.audio_store — Audio answer storage
======================================================

Recorded or uploaded audio answers are stored in a configurable
``uploads/audio`` directory (Docker volume) and served by the static-file
mount in :mod:`gatehouse.api.main`.  The URL returned by :meth:`save` is
what gets written to ``answers.audio_url``; the file name at its tail is
the object id used for deletion.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.getenv("GATEHOUSE_UPLOAD_DIR", "uploads"))
AUDIO_URL_PREFIX = "/api/uploads/audio/"
MAX_FILE_SIZE = 25 * 1024 * 1024  # 25 MB

# MIME type (without codec parameters) → stored extension
ALLOWED_MIME_TYPES: dict[str, str] = {
    "audio/webm": ".webm",
    "video/webm": ".webm",  # Chrome MediaRecorder labels audio-only blobs this way
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
}
ALLOWED_EXTENSIONS = set(ALLOWED_MIME_TYPES.values())


class AudioStoreError(Exception):
    """The audio payload was valid but could not be stored or removed."""


class AudioStore:
    """Filesystem-backed store for audio answers."""

    def __init__(self, root: Path = UPLOAD_DIR) -> None:
        self.audio_dir = Path(root) / "audio"

    def ensure_dir(self) -> None:
        """Create the audio directory if it doesn't exist."""
        self.audio_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _extension(filename: str | None, content_type: str | None) -> str:
        ext = Path(filename or "").suffix.lower()
        if ext in ALLOWED_EXTENSIONS:
            return ext
        mime = (content_type or "").split(";", 1)[0].strip().lower()
        if mime in ALLOWED_MIME_TYPES:
            return ALLOWED_MIME_TYPES[mime]
        raise ValueError(
            f"Audio type not allowed: {content_type or ext or 'unknown'!r}. "
            f"Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}"
        )

    @staticmethod
    def object_id(url: str) -> str:
        """Return the stored file name behind *url*.

        Raises ``ValueError`` for URLs this store did not issue.
        """
        if not url.startswith(AUDIO_URL_PREFIX):
            raise ValueError(f"Not an audio store URL: {url!r}")
        name = url[len(AUDIO_URL_PREFIX):]
        if not name or "/" in name or name.startswith("."):
            raise ValueError(f"Malformed audio store URL: {url!r}")
        return name

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def save(
        self,
        filename: str | None,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        """Validate and persist an audio answer, returning its URL.

        Raises
        ------
        ValueError
            If the payload is empty, too large, or not an allowed type.
        AudioStoreError
            If the file could not be written.
        """
        if not content:
            raise ValueError("Audio file is empty")
        if len(content) > MAX_FILE_SIZE:
            raise ValueError(
                f"Audio file too large: {len(content)} bytes "
                f"(max {MAX_FILE_SIZE // 1024 // 1024}MB)"
            )
        ext = self._extension(filename, content_type)

        unique_name = f"{uuid.uuid4().hex}{ext}"
        dest = self.audio_dir / unique_name
        try:
            await asyncio.to_thread(self.ensure_dir)
            await asyncio.to_thread(dest.write_bytes, content)
        except OSError as exc:
            raise AudioStoreError(f"Failed to store audio: {exc}") from exc

        logger.debug("Stored audio %s (%d bytes)", unique_name, len(content))
        return f"{AUDIO_URL_PREFIX}{unique_name}"

    def delete(self, url: str) -> bool:
        """Remove the audio object behind *url*.

        Returns ``True`` if the file existed and was deleted, ``False`` if
        it was already gone.  Raises ``ValueError`` for foreign URLs and
        :class:`AudioStoreError` if the file could not be removed.
        """
        filepath = self.audio_dir / self.object_id(url)
        if not filepath.is_file():
            return False
        try:
            filepath.unlink()
        except OSError as exc:
            raise AudioStoreError(f"Failed to delete audio: {exc}") from exc
        return True

    def discard(self, urls: list[str]) -> int:
        """Best-effort delete of several objects; failures are logged.

        Returns the number of objects actually removed.
        """
        removed = 0
        for url in urls:
            try:
                if self.delete(url):
                    removed += 1
            except (ValueError, AudioStoreError):
                logger.exception("Failed to discard audio %s", url)
        return removed
