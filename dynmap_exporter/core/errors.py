# dynmap_exporter/core/errors.py
# -*- coding: utf-8 -*-

"""Error types for export operations (UI-agnostic)."""


class ExportError(Exception):
    """Base exception for export failures.

    Args:
        code: Stable error code for UI mapping / translation.
        details: Optional technical details for logs or advanced display.
    """

    def __init__(self, code: str, details: str = "") -> None:
        super().__init__(code)
        self.code = code
        self.details = details


class ValidationError(ExportError):
    """Raised when input parameters are invalid."""
    pass


class PreconditionError(ValidationError):
    """Raised when the provider object lacks a required field."""

    def __init__(self, path: str, details: str = "") -> None:
        super().__init__("ERR_PRECONDITION_MISSING", details or f"Provider is missing '{path}'.")
        self.path = path


class TileFormatError(ExportError):
    """Raised when a registry entry does not follow the tile layout."""
    pass


class MalformedPathError(TileFormatError):
    """Raised when a tile path has too few segments."""
    pass


class MalformedFilenameError(TileFormatError):
    """Raised when a tile filename does not carry exactly two coordinates."""
    pass


class TileLoadError(ExportError):
    """Raised by tile loaders for a single unreadable tile (recoverable)."""
    pass
