"""Listening port discovery for lspreport."""

import logging
import subprocess
from collections.abc import Mapping, Sequence
from typing import TypeVar

from lspreport.errors import ExternalToolError

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

LSOF_COMMAND = ["lsof", "-iTCP", "-sTCP:LISTEN", "-Fpn"]
PID_MARKER = "p"
LOOPBACK_MARKER = "nlocalhost:"


def run_command(command: Sequence[str]) -> str:
    """
    Run an external tool and return its standard output.

    Raises:
        ExternalToolError: If the tool is missing or exits non-zero.
    """
    try:
        result = subprocess.run(list(command), capture_output=True, text=True, check=False)
    except OSError as exc:
        raise ExternalToolError(command, stderr=str(exc)) from exc
    if result.returncode != 0:
        raise ExternalToolError(command, result.returncode, result.stdout, result.stderr)
    return result.stdout


def is_decimal(text: str) -> bool:
    """Check for a plain run of ASCII digits, with no sign or separators."""
    return text.isascii() and text.isdigit()


def parse_lsof_output(output: str) -> dict[int, int]:
    """
    Parse `lsof -Fpn` field output into a port -> pid mapping.

    A `p<pid>` line sets the owner for the `n<address>` lines that follow it.
    Only loopback addresses are kept, and malformed entries are skipped.
    """
    result: dict[int, int] = {}
    current_pid: int | None = None
    for line in output.split("\n"):
        line = line.strip()
        if line.startswith(PID_MARKER):
            pid_text = line[len(PID_MARKER) :]
            current_pid = int(pid_text) if is_decimal(pid_text) else None
        elif line.startswith(LOOPBACK_MARKER) and current_pid is not None:
            port_text = line[len(LOOPBACK_MARKER) :]
            if is_decimal(port_text):
                result[int(port_text)] = current_pid
    return result


def list_listening_ports() -> dict[int, int]:
    """Return loopback TCP listening ports mapped to their owning pid."""
    ports = parse_lsof_output(run_command(LSOF_COMMAND))
    logger.debug("Found %d listening loopback ports", len(ports))
    return ports


def invert_mapping(mapping: Mapping[K, V]) -> dict[V, list[K]]:
    """Group keys by value, e.g. pid -> [ports] from port -> pid."""
    result: dict[V, list[K]] = {}
    for key, value in mapping.items():
        result.setdefault(value, []).append(key)
    return result
