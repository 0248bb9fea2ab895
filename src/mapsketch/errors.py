"""Exception hierarchy shared by the codec, the file API client and the bridge."""

from __future__ import annotations


class MapSketchError(Exception):
    """Base class for all mapsketch errors."""


class GeoJSONFormatError(MapSketchError):
    """Payload is not a recognizable GeoJSON FeatureCollection."""


class DocumentFormatError(MapSketchError):
    """Saved document matches none of the known file layouts."""


class InvalidFileNameError(MapSketchError):
    """File name is empty or on the placeholder denylist."""


class FileApiError(MapSketchError):
    """The file service rejected a request or could not be reached.

    Attributes:
        status: HTTP status code, or None for transport failures.
        message: Human-readable reason, taken from the response body when present.
    """

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(f"{status}: {message}" if status is not None else message)
        self.status = status
        self.message = message


class DocumentNotFoundError(FileApiError):
    """Requested file does not exist for this account."""


class UnauthorizedError(FileApiError):
    """Session expired or the account lacks access; re-authentication is required."""
