"""Content-addressed filesystem cache for synthesized unit audio.

Responsibilities:
- Build stable cache keys from voice identity, unit text, and output format.
- Read and write payloads under `<root>/<voice>/<sha256>.<ext>`.
- Publish writes atomically so concurrent readers never see partial files.
"""

from __future__ import annotations

from dataclasses import dataclass
from hashlib import sha256
import os
from pathlib import Path
import shutil
import tempfile

from ..models.datatypes import AudioFormat


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Stable address of one cached unit payload.

    Attributes:
        voice_identity: Speaker id or model UUID namespacing the payload.
        digest: SHA-256 hex digest of the unit text.
        extension: File extension derived from the backend output format.
    """

    voice_identity: str
    digest: str
    extension: str

    @property
    def relative_path(self) -> Path:
        """Return the payload path relative to the cache root."""

        return Path(self.voice_identity) / f"{self.digest}.{self.extension}"


class UnitCache:
    """Filesystem-backed store of synthesized unit audio."""

    def __init__(self, root: Path) -> None:
        """Initialize the cache with a root directory (created lazily)."""

        self.root = root

    @staticmethod
    def make_key(text: str, voice_identity: str, audio_format: AudioFormat) -> CacheKey:
        """Build the deterministic cache key for one unit."""

        digest = sha256(text.encode("utf-8")).hexdigest()
        return CacheKey(
            voice_identity=voice_identity,
            digest=digest,
            extension=audio_format.extension,
        )

    def path_for(self, key: CacheKey) -> Path:
        """Return the absolute payload path for a key."""

        return self.root / key.relative_path

    def get(self, key: CacheKey) -> bytes | None:
        """Return cached bytes, or `None` on a miss. Read errors propagate."""

        path = self.path_for(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def put(self, key: CacheKey, data: bytes) -> Path:
        """Write a payload via temporary file and atomic rename."""

        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle, temp_name = tempfile.mkstemp(
            prefix=f".{key.digest}.",
            suffix=".tmp",
            dir=path.parent,
        )
        try:
            with os.fdopen(handle, "wb") as temp_file:
                temp_file.write(data)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        return path

    def clear(self) -> int:
        """Delete every cached voice directory and return the number of payloads removed."""

        if not self.root.is_dir():
            return 0
        removed = 0
        for voice_dir in sorted(self.root.iterdir()):
            if not voice_dir.is_dir():
                continue
            removed += sum(1 for entry in voice_dir.iterdir() if entry.is_file())
            shutil.rmtree(voice_dir)
        return removed
