"""gphoto2 command grammar and output parsing.

Only formats the four verbs the capture engine needs and parses their
textual output; the protocol itself is gphoto2's business.
"""

import re
import shlex
from dataclasses import dataclass
from typing import List, Optional

from turnscan.utils import get_logger

logger = get_logger("devices.gphoto")

GPHOTO2 = "gphoto2"

# Config values forced before every capture
AUTOFOCUS_CONFIG = ("autofocusdrive", "1")
JPEG_FORMAT_CONFIG = ("imageformat", "2")

SUMMARY_SIGNATURES = ("Camera summary", "Model")
CAPTURE_SIGNATURES = ("New file", "Saving file")

_ROW_PATTERN = re.compile(r"^(?P<model>.+?)\s+(?P<locator>usb:\S+)\s*$")


@dataclass(frozen=True)
class DetectedCamera:
    """One row of the auto-detect table."""
    model: str
    locator: str


def _port_flag(locator: Optional[str]) -> str:
    return f" --port={locator}" if locator else ""


def auto_detect_command() -> str:
    return f"{GPHOTO2} --auto-detect"


def summary_command(locator: str) -> str:
    return f"{GPHOTO2} --port={locator} --summary"


def set_config_command(name: str, value: object, locator: Optional[str] = None) -> str:
    return f"{GPHOTO2}{_port_flag(locator)} --set-config {name}={value}"


def get_config_command(name: str, locator: Optional[str] = None) -> str:
    return f"{GPHOTO2}{_port_flag(locator)} --get-config {name}"


def capture_command(locator: str, output_path: str) -> str:
    return (
        f"{GPHOTO2} --port={locator} --capture-image-and-download "
        f"--filename={shlex.quote(output_path)} --force-overwrite"
    )


def has_detect_header(output: str) -> bool:
    """True when auto-detect output contains its table header."""
    if not output:
        return False
    return any("Model" in line and "Port" in line for line in output.splitlines())


def parse_auto_detect(output: str) -> List[DetectedCamera]:
    """
    Parse ``gphoto2 --auto-detect`` output.

    Expected shape::

        Model                          Port
        ----------------------------------------------------------
        Canon EOS 550D                 usb:001,004

    Rows that do not end in a usb locator are skipped and logged.
    """
    if not output:
        return []

    lines = output.splitlines()
    header_index = next(
        (i for i, line in enumerate(lines) if "Model" in line and "Port" in line),
        -1,
    )
    if header_index == -1:
        logger.debug("No auto-detect header found")
        return []

    start = header_index + 1
    if start < len(lines) and lines[start].strip().startswith("----"):
        start += 1

    cameras: List[DetectedCamera] = []
    for raw in lines[start:]:
        line = raw.strip()
        if not line:
            continue
        match = _ROW_PATTERN.match(line)
        if not match:
            logger.info(f"Skipping unrecognised auto-detect line: {line!r}")
            continue
        cameras.append(DetectedCamera(
            model=match.group("model").strip(),
            locator=match.group("locator"),
        ))

    return cameras


def is_summary_response(output: str) -> bool:
    """True when ``--summary`` output carries the camera signature."""
    return bool(output) and any(sig in output for sig in SUMMARY_SIGNATURES)


def is_capture_response(output: str) -> bool:
    """True when capture output reports a saved file."""
    return bool(output) and any(sig in output for sig in CAPTURE_SIGNATURES)


def parse_config_choices(output: str) -> List[str]:
    """Extract the ``Choice:`` values from ``--get-config`` output."""
    choices = []
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("Choice:"):
            continue
        # "Choice: 2 Large Fine JPEG"
        parts = line.split(None, 2)
        if len(parts) == 3:
            choices.append(parts[2])
    return choices
