"""Voice profile models for synthesis configuration.

Responsibilities:
- Represent the voice identity and tuning parameters of one backend.
- Decouple pipeline logic from backend-specific naming.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class VoiceProfile:
    """Declarative voice profile used by synthesis backends.

    Attributes:
        voice_id: Speaker id (local engine) or model UUID (cloud API).
        speed: Relative speaking rate multiplier.
        pitch: Pitch offset.
        volume: Relative volume multiplier.
    """

    voice_id: str
    speed: float = 1.0
    pitch: float = 0.0
    volume: float = 1.0
