"""Text segmentation utilities."""

from .segmenter import DEFAULT_TERMINATORS, Segmenter, split_text_units

__all__ = ["DEFAULT_TERMINATORS", "Segmenter", "split_text_units"]
