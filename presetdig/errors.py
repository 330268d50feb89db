"""Exception types raised by the presetdig engines."""

from __future__ import annotations


class PresetDigError(Exception):
    """Base class for all presetdig errors."""


class DocumentError(PresetDigError):
    """The input document could not be read, decompressed or parsed."""


class PayloadError(PresetDigError):
    """A single payload node holds content that cannot be decoded."""
