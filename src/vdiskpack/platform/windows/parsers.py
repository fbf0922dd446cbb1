"""
Windows output parsers.

Parsers for diskpart output and robocopy exit codes.
"""

from __future__ import annotations

import re

# diskpart reports most failures on stdout with exit code 0
_DISKPART_ERROR_PATTERNS = [
    re.compile(r"DiskPart has encountered an error.*", re.IGNORECASE),
    re.compile(r"Virtual Disk Service error:.*", re.IGNORECASE),
    re.compile(r"The specified drive letter is not free.*", re.IGNORECASE),
    re.compile(r"The file exists\.?", re.IGNORECASE),
    re.compile(r"There is not enough space.*", re.IGNORECASE),
    re.compile(r"The system cannot find the file specified\.?", re.IGNORECASE),
    re.compile(r"Access is denied\.?", re.IGNORECASE),
]

# robocopy exit codes are a bitmask; 8 and above mean something failed
ROBOCOPY_FLAGS = {
    1: "files copied",
    2: "extra files or directories detected",
    4: "mismatched files or directories detected",
    8: "some files or directories could not be copied",
    16: "serious error, no files were copied",
}


def parse_diskpart_errors(output: str) -> list[str]:
    """Return the error lines found in diskpart output."""
    errors: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        for pattern in _DISKPART_ERROR_PATTERNS:
            match = pattern.search(line)
            if match:
                errors.append(match.group(0))
                break
    return errors


def classify_robocopy_exit(returncode: int) -> tuple[bool, str]:
    """
    Classify a robocopy exit code.
    Returns (success, description).
    """
    if returncode < 0:
        return False, f"robocopy did not run (code {returncode})"
    if returncode == 0:
        return True, "no files copied, destination already up to date"

    parts = [text for bit, text in ROBOCOPY_FLAGS.items() if returncode & bit]
    description = ", ".join(parts) if parts else f"exit code {returncode}"
    return returncode < 8, description
