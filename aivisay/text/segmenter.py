"""Sentence-level segmentation of input text into playable units.

Responsibilities:
- Cut text immediately after each configured terminator character.
- Trim fragments and drop blank ones without consuming an index.
- Yield `TextUnit` records lazily in original reading order.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import re

from ..models.datatypes import TextUnit

DEFAULT_TERMINATORS = "、。!?！？．"


class Segmenter:
    """Split text into ordered `TextUnit` values at sentence terminators."""

    def __init__(self, terminators: Iterable[str] = DEFAULT_TERMINATORS) -> None:
        """Compile the split pattern for the given terminator characters."""

        characters = "".join(dict.fromkeys("".join(terminators)))
        if not characters:
            raise ValueError("Segmenter requires at least one terminator character.")
        self.terminators = characters
        self._pattern = re.compile(f"([{re.escape(characters)}])")

    def iter_units(self, text: str) -> Iterator[TextUnit]:
        """Yield units lazily; blank fragments and their terminator are skipped."""

        parts = self._pattern.split(text)
        index = 0
        # re.split with one capturing group alternates fragment, terminator.
        for position in range(0, len(parts), 2):
            fragment = parts[position].strip()
            if not fragment:
                continue
            terminator = parts[position + 1] if position + 1 < len(parts) else ""
            yield TextUnit(index=index, content=fragment + terminator)
            index += 1

    def split(self, text: str) -> list[TextUnit]:
        """Return all units of `text` as a list."""

        return list(self.iter_units(text))


def split_text_units(text: str, terminators: Iterable[str] = DEFAULT_TERMINATORS) -> list[TextUnit]:
    """Split `text` with a one-off segmenter."""

    return Segmenter(terminators).split(text)
