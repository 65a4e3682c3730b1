"""Error kinds and exceptions raised by the update engine."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Tagged error kinds surfaced through the progress/error sink."""

    DEVICE_INFO_MISSING = "DeviceInfoMissing"
    DEVICE_INFO_MALFORMED = "DeviceInfoMalformed"
    WRONG_DEVICE = "WrongDevice"
    HTTP_ERROR = "HttpError"
    EMPTY_BODY = "EmptyBody"
    NETWORK_IO = "NetworkIO"
    ARCHIVE_CORRUPT = "ArchiveCorrupt"
    FILE_SYSTEM_IO = "FileSystemIO"
    CANCELLED = "Cancelled"
    EXTERNAL = "External"
    INTERNAL = "Internal"


class UpdateError(Exception):
    """Base class for every failure the engine reports to its caller."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status(self) -> Optional[int]:
        return None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class DeviceInfoMissingError(UpdateError):
    kind = ErrorKind.DEVICE_INFO_MISSING


class DeviceInfoMalformedError(UpdateError):
    kind = ErrorKind.DEVICE_INFO_MALFORMED


class WrongDeviceError(UpdateError):
    kind = ErrorKind.WRONG_DEVICE


class HttpStatusError(UpdateError):
    """Server answered with a non-successful HTTP status."""

    kind = ErrorKind.HTTP_ERROR

    def __init__(self, status_code: int, url: str):
        super().__init__(f"Unexpected HTTP status {status_code} for {url}")
        self.status_code = status_code
        self.url = url

    @property
    def status(self) -> Optional[int]:
        return self.status_code


class EmptyBodyError(UpdateError):
    kind = ErrorKind.EMPTY_BODY


class NetworkIOError(UpdateError):
    kind = ErrorKind.NETWORK_IO


class ArchiveCorruptError(UpdateError):
    kind = ErrorKind.ARCHIVE_CORRUPT


class FileSystemIOError(UpdateError):
    kind = ErrorKind.FILE_SYSTEM_IO


class UpdateInProgressError(RuntimeError):
    """Raised when an update or clear is requested while a run is active."""
