"""Data models for lspreport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable view of one OS process."""

    pid: int
    command_line: str


@dataclass(slots=True, frozen=True)
class VmInfo:
    """Runtime descriptor fields of a VM."""

    architecture_bits: int | None = None
    host_cpu: str | None = None
    operating_system: str | None = None
    start_time: int | None = None  # Milliseconds since epoch

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> VmInfo:
        """Decode a getVM response. Missing fields become None."""
        return cls(
            architecture_bits=data.get("architectureBits"),
            host_cpu=data.get("hostCPU"),
            operating_system=data.get("operatingSystem"),
            start_time=data.get("startTime"),
        )


@dataclass(slots=True, frozen=True)
class MemoryUsage:
    """Heap usage of a single isolate."""

    external_usage: int | None = None
    heap_capacity: int | None = None
    heap_usage: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> MemoryUsage:
        """Decode a getMemoryUsage response."""
        return cls(
            external_usage=data.get("externalUsage"),
            heap_capacity=data.get("heapCapacity"),
            heap_usage=data.get("heapUsage"),
        )

    def to_json(self) -> dict[str, Any]:
        """Render in the VM service MemoryUsage shape."""
        return {
            "type": "MemoryUsage",
            "externalUsage": self.external_usage,
            "heapCapacity": self.heap_capacity,
            "heapUsage": self.heap_usage,
        }


@dataclass(slots=True, frozen=True)
class ProcessMemoryItem:
    """One node of the process-wide memory breakdown tree."""

    name: str | None = None
    description: str | None = None
    size: int | None = None  # Bytes
    children: tuple[ProcessMemoryItem, ...] = ()

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ProcessMemoryItem:
        """Decode a node and, recursively, its children."""
        return cls(
            name=data.get("name"),
            description=data.get("description"),
            size=data.get("size"),
            children=tuple(cls.from_json(child) for child in data.get("children") or []),
        )

    def to_json(self) -> dict[str, Any]:
        """Render the node and its subtree."""
        return {
            "name": self.name,
            "description": self.description,
            "size": self.size,
            "children": [child.to_json() for child in self.children],
        }


@dataclass(slots=True, frozen=True)
class ProcessMemoryUsage:
    """Process-wide memory usage as reported by the VM."""

    root: ProcessMemoryItem | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ProcessMemoryUsage:
        """Decode a getProcessMemoryUsage response; a missing root is kept as None."""
        root = data.get("root")
        return cls(root=ProcessMemoryItem.from_json(root) if root else None)

    def to_json(self) -> dict[str, Any]:
        """Render in the VM service ProcessMemoryUsage shape."""
        return {
            "type": "ProcessMemoryUsage",
            "root": self.root.to_json() if self.root else None,
        }


@dataclass(slots=True, frozen=True)
class AllocationEntry:
    """Per-class heap statistics from an allocation profile."""

    bytes_current: int
    instances_current: int | None = None
    accumulated_size: int | None = None
    instances_accumulated: int | None = None
    class_name: str | None = None
    library_name: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> AllocationEntry:
        """
        Decode one member of an allocation profile.

        Class and library names are flattened out of their nested references.

        Raises:
            KeyError: If bytesCurrent is missing.
        """
        class_ref = data.get("class") or {}
        library = class_ref.get("library") or {}
        return cls(
            bytes_current=data["bytesCurrent"],
            instances_current=data.get("instancesCurrent"),
            accumulated_size=data.get("accumulatedSize"),
            instances_accumulated=data.get("instancesAccumulated"),
            class_name=class_ref.get("name"),
            library_name=library.get("name"),
        )

    def to_json(self) -> dict[str, Any]:
        """Render the entry with its class and library names."""
        return {
            "bytesCurrent": self.bytes_current,
            "instancesCurrent": self.instances_current,
            "accumulatedSize": self.accumulated_size,
            "instancesAccumulated": self.instances_accumulated,
            "className": self.class_name,
            "libraryName": self.library_name,
        }


@dataclass(slots=True, frozen=True)
class IsolateSnapshot:
    """Memory state of one isolate."""

    id: str
    isolate_group_id: str | None
    name: str | None
    memory: MemoryUsage
    allocation_profile: tuple[AllocationEntry, ...] = ()

    def to_json(self) -> dict[str, Any]:
        """Render the isolate with its memory usage and filtered allocation profile."""
        return {
            "id": self.id,
            "isolateGroupId": self.isolate_group_id,
            "name": self.name,
            "memory": self.memory.to_json(),
            "allocationProfile": [entry.to_json() for entry in self.allocation_profile],
        }


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Diagnostic snapshot collected from one language server."""

    vm: VmInfo
    process_memory_usage: ProcessMemoryUsage
    isolates: tuple[IsolateSnapshot, ...] = ()

    def to_json(self) -> dict[str, Any]:
        """Render the snapshot in the report document layout."""
        return {
            "vm.architectureBits": self.vm.architecture_bits,
            "vm.hostCPU": self.vm.host_cpu,
            "vm.operatingSystem": self.vm.operating_system,
            "vm.startTime": self.vm.start_time,
            "processMemoryUsage": self.process_memory_usage.to_json(),
            "isolates": [isolate.to_json() for isolate in self.isolates],
        }
