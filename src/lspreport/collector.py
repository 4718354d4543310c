"""Snapshot collection from VM service endpoints."""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from lspreport.errors import SnapshotError
from lspreport.models import (
    AllocationEntry,
    IsolateSnapshot,
    MemoryUsage,
    ProcessMemoryUsage,
    Snapshot,
    VmInfo,
)
from lspreport.vm_service import VmServiceClient

logger = logging.getLogger(__name__)

# Isolates run by the VM and SDK tooling rather than by the analysis server
EXCLUDED_ISOLATES = frozenset({"vm-service", "kernel-service", "dartdev"})


def filter_allocation_profile(members: list[dict[str, Any]], min_bytes: int = 1024) -> list[AllocationEntry]:
    """Keep entries with at least min_bytes live bytes, largest first."""
    entries = [
        AllocationEntry.from_json(member)
        for member in members
        if member.get("bytesCurrent") is not None and member["bytesCurrent"] >= min_bytes
    ]
    return sorted(entries, key=lambda entry: entry.bytes_current, reverse=True)


class SnapshotCollector:
    """
    Collects a Snapshot from each resolved VM service endpoint.

    Each endpoint is tried once; a failure at any step abandons only that
    endpoint's snapshot. The connection is released whether or not the
    collection succeeds.
    """

    def __init__(
        self,
        connect: Callable[[str], VmServiceClient] | None = None,
        min_bytes: int = 1024,
        timeout: float | None = 30.0,
    ) -> None:
        """
        Initialize the SnapshotCollector.

        Args:
            connect: Opens a client for a websocket URI. Defaults to
                VmServiceClient.connect with the given timeout.
            min_bytes: Smallest allocation profile entry to keep.
            timeout: Per-request timeout used by the default connect.
        """
        self._connect = connect or (lambda uri: VmServiceClient.connect(uri, timeout=timeout))
        self._min_bytes = min_bytes

    def collect(self, uri: str) -> Snapshot:
        """
        Collect one snapshot from the VM service at uri.

        Raises:
            SnapshotError: If connecting, any request, or decoding fails.
        """
        try:
            with self._connect(uri) as service:
                vm = service.get_vm()
                process_memory = ProcessMemoryUsage.from_json(service.get_process_memory_usage())
                isolates = tuple(self._collect_isolates(service, vm))
                return Snapshot(vm=VmInfo.from_json(vm), process_memory_usage=process_memory, isolates=isolates)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SnapshotError(f"malformed VM service data: {exc!r}") from exc

    def _collect_isolates(self, service: VmServiceClient, vm: dict[str, Any]) -> list[IsolateSnapshot]:
        refs = [*(vm.get("isolates") or []), *(vm.get("systemIsolates") or [])]
        snapshots: list[IsolateSnapshot] = []
        for ref in refs:
            name = ref.get("name")
            if name in EXCLUDED_ISOLATES:
                continue
            isolate_id = ref.get("id")
            if isolate_id is None:
                continue
            memory = MemoryUsage.from_json(service.get_memory_usage(isolate_id))
            profile = service.get_allocation_profile(isolate_id)
            snapshots.append(
                IsolateSnapshot(
                    id=isolate_id,
                    isolate_group_id=ref.get("isolateGroupId"),
                    name=name,
                    memory=memory,
                    allocation_profile=tuple(filter_allocation_profile(profile.get("members") or [], self._min_bytes)),
                )
            )
        return snapshots

    def collect_all(self, endpoints: Mapping[int, str]) -> dict[str, Snapshot]:
        """Collect from every endpoint, keyed by stringified pid. Failures are omitted."""
        snapshots: dict[str, Snapshot] = {}
        for pid, uri in endpoints.items():
            logger.info("Trying to fetch data from LSP process %d via %s", pid, uri)
            try:
                snapshots[str(pid)] = self.collect(uri)
            except SnapshotError as exc:
                logger.info("... FAILED")
                logger.debug("Collection from %d failed: %s", pid, exc)
                continue
            logger.info("... OK")
        return snapshots
