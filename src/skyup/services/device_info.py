"""Reader for the device identity file (.sys/hwsw.info)."""

import logging
from pathlib import Path

from pydantic import ValidationError

from skyup.models.device import DeviceInfo
from skyup.models.errors import (
    DeviceInfoMalformedError,
    DeviceInfoMissingError,
    FileSystemIOError,
)

INFO_FILE = Path(".sys") / "hwsw.info"
BUILD_PREFIX = "build-"


def parse_info_lines(content: str) -> dict[str, str]:
    """Parse key="value" lines into a dict.

    Only lines with exactly one '=' count; quotes are dropped from the
    value. Anything else is ignored.
    """
    pairs: dict[str, str] = {}
    for line in content.splitlines():
        parts = line.split("=")
        if len(parts) != 2:
            continue
        key, value = parts
        pairs[key] = value.replace('"', "")
    return pairs


def parse_device_info(content: str) -> DeviceInfo:
    """Build DeviceInfo from the text of hwsw.info.

    Raises:
        DeviceInfoMalformedError: If hw/sw is missing or sw is not a build number
    """
    pairs = parse_info_lines(content)
    model_name = pairs.get("hw")
    software = pairs.get("sw")
    if model_name is None or software is None:
        raise DeviceInfoMalformedError(f"hw or sw not found in {INFO_FILE.as_posix()}")

    build = software.removeprefix(BUILD_PREFIX)
    # int() would also take signs, whitespace, underscores and non-ASCII digits
    if not (build.isascii() and build.isdigit()):
        raise DeviceInfoMalformedError(f"Firmware build is not a number: {software!r}")
    firmware_build = int(build)

    try:
        return DeviceInfo(model_name=model_name, firmware_build=firmware_build)
    except ValidationError as e:
        raise DeviceInfoMalformedError(f"Invalid device info: {e}") from e


class DeviceInfoReader:
    """Reads model and firmware build from a mounted device root."""

    def __init__(self):
        self.logger = logging.getLogger("skyup.device_info")

    def read(self, root: Path) -> DeviceInfo:
        """Read DeviceInfo from <root>/.sys/hwsw.info.

        Args:
            root: Mounted device directory

        Returns:
            Parsed DeviceInfo

        Raises:
            DeviceInfoMissingError: If the info file does not exist
            DeviceInfoMalformedError: If required keys are missing or invalid
            FileSystemIOError: If the file exists but cannot be read
        """
        info_path = Path(root) / INFO_FILE
        if not info_path.is_file():
            self.logger.error(f"Device info not found: {info_path}")
            raise DeviceInfoMissingError(f"{INFO_FILE.as_posix()} not found")

        try:
            content = info_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise FileSystemIOError(f"Failed to read {info_path}: {e}") from e

        info = parse_device_info(content)
        self.logger.info(
            f"Device info: model={info.model_name}, build={info.firmware_build}"
        )
        return info
