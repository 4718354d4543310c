"""Process inventory for lspreport."""

import logging
import os
import signal
from collections.abc import Iterable

import psutil

from lspreport.errors import ExternalToolError, RemediationError
from lspreport.models import ProcessRecord

logger = logging.getLogger(__name__)


def own_process_tree() -> set[int]:
    """Return the pid of this process and of all its ancestors."""
    pids = {os.getpid()}
    try:
        pids.update(parent.pid for parent in psutil.Process().parents())
    except psutil.Error:
        pids.add(os.getppid())
    return pids


def list_processes() -> list[ProcessRecord]:
    """
    List the calling user's processes with their full command lines.

    Processes owned by other users are left out, as are this process and
    its ancestors, whose command lines may repeat the filter text.
    Processes that exit, turn into zombies or deny access while being read
    are skipped. A failure of the listing itself raises ExternalToolError.
    """
    records: list[ProcessRecord] = []
    uid = os.getuid()
    excluded = own_process_tree()
    try:
        for proc in psutil.process_iter(attrs=["pid", "name", "cmdline", "uids"]):
            try:
                info = proc.info
                uids = info.get("uids")
                if uids is None or uids.real != uid or info["pid"] in excluded:
                    continue
                cmdline = info.get("cmdline") or []
                command_line = " ".join(cmdline) if cmdline else info.get("name") or ""
                records.append(ProcessRecord(pid=info["pid"], command_line=command_line))
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
    except psutil.Error as exc:
        raise ExternalToolError(
            [], stderr=str(exc) or type(exc).__name__, description="listing processes failed"
        ) from exc
    return records


def filter_by_command_substring(records: Iterable[ProcessRecord], substring: str) -> dict[int, str]:
    """Return pid -> command line for records whose command line contains substring."""
    return {record.pid: record.command_line for record in records if substring in record.command_line}


def find_processes(kind_filter: str) -> dict[int, str]:
    """List processes and keep the ones matching kind_filter."""
    return filter_by_command_substring(list_processes(), kind_filter)


def send_quit_signal(pid: int) -> None:
    """
    Send SIGQUIT to pid.

    A Dart VM started without a VM service starts one on SIGQUIT, which in
    turn makes the tooling spawn a development-service companion.
    """
    try:
        psutil.Process(pid).send_signal(signal.SIGQUIT)
    except (psutil.Error, OSError) as exc:
        raise RemediationError(pid, str(exc) or type(exc).__name__) from exc
    logger.debug("Sent SIGQUIT to %d", pid)


def format_processes(processes: dict) -> str:
    """Render pid -> value pairs as an indented table."""
    return "\n".join(f" | {pid} {value}" for pid, value in processes.items())
