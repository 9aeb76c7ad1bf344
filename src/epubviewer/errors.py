"""Error taxonomy shared by the import pipeline and the HTTP layer."""

from __future__ import annotations


class EpubViewerError(Exception):
    """Base error. Carries a machine-readable kind and a human-readable message."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "kind": self.kind}


class InvalidInputError(EpubViewerError, ValueError):
    """Unsupported file type, malformed URL, disallowed scheme, bad payload."""

    kind = "input"
    status_code = 400


class NotFoundError(EpubViewerError, LookupError):
    kind = "not_found"
    status_code = 404


class ConversionError(EpubViewerError, RuntimeError):
    """The external document converter is missing or failed."""

    kind = "conversion"
    status_code = 500


class FetchError(EpubViewerError, RuntimeError):
    """A remote page could not be fetched (network failure, timeout, non-2xx)."""

    kind = "fetch"
    status_code = 502

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StorageError(EpubViewerError, OSError):
    kind = "storage"
    status_code = 500
