"""Data models for devperf.

Every snapshot type is an immutable dataclass built once from a device
response. Wire attributes the device did not report stay ``None``.
"""

import locale
import unicodedata
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Annotated, Any, TypeVar

from pydantic import BeforeValidator, Field, NonNegativeInt, TypeAdapter, ValidationError

from devperf.errors import DeserializationError

T = TypeVar("T")


def _none_as_empty(value: Any) -> Any:
    return () if value is None else value


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """One process running on the device at snapshot time."""

    app_name: Annotated[str | None, Field(alias="AppName")] = None
    cpu_usage: Annotated[float | None, Field(alias="CPUUsage")] = None  # percent
    image_name: Annotated[str | None, Field(alias="ImageName")] = None
    process_id: Annotated[int | None, Field(alias="ProcessId")] = None
    user_name: Annotated[str | None, Field(alias="UserName")] = None
    package_full_name: Annotated[str | None, Field(alias="PackageFullName")] = None
    page_file_usage: Annotated[NonNegativeInt | None, Field(alias="PageFileUsage")] = None
    working_set_size: Annotated[NonNegativeInt | None, Field(alias="WorkingSetSize")] = None

    def __str__(self) -> str:
        return f"{self.app_name} ({self.image_name})"


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """
    Processes returned by one fetch, in device order.

    A missing ``Processes`` key and an explicit ``null`` both load as an
    empty tuple, so queries never need to special-case absence.
    """

    processes: Annotated[
        tuple[ProcessInfo, ...],
        BeforeValidator(_none_as_empty),
        Field(alias="Processes"),
    ] = ()

    def __iter__(self) -> Iterator[ProcessInfo]:
        return iter(self.processes)

    def __len__(self) -> int:
        return len(self.processes)

    def contains_process_id(self, process_id: int) -> bool:
        """Check whether a process with this id is in the snapshot."""
        return any(proc.process_id == process_id for proc in self.processes)

    def contains_package(self, package_name: str, *, case_sensitive: bool) -> bool:
        """
        Check whether any process belongs to the given package.

        Names are compared with the collation of the current ``LC_COLLATE``
        locale after NFC normalization; ``case_sensitive=False`` case-folds
        both sides first. A process without a package identity only matches
        a search for the empty string.

        Args:
            package_name: Full package name to look for.
            case_sensitive: Whether letter case must match.
        """
        wanted = _collation_key(package_name, case_sensitive)
        for proc in self.processes:
            candidate = _collation_key(proc.package_full_name or "", case_sensitive)
            if locale.strcoll(candidate, wanted) == 0:
                return True
        return False


def _collation_key(value: str, case_sensitive: bool) -> str:
    value = unicodedata.normalize("NFC", value)
    return value if case_sensitive else value.casefold()


@dataclass(slots=True, frozen=True)
class GpuAdapterInfo:
    """Counters for a single GPU adapter. Memory values are in bytes."""

    dedicated_memory: Annotated[NonNegativeInt | None, Field(alias="DedicatedMemory")] = None
    dedicated_memory_used: Annotated[NonNegativeInt | None, Field(alias="DedicatedMemoryUsed")] = None
    description: Annotated[str | None, Field(alias="Description")] = None
    system_memory: Annotated[NonNegativeInt | None, Field(alias="SystemMemory")] = None
    system_memory_used: Annotated[NonNegativeInt | None, Field(alias="SystemMemoryUsed")] = None
    # One ratio per engine, in device order
    engines_utilization: Annotated[tuple[float, ...] | None, Field(alias="EnginesUtilization")] = None


@dataclass(slots=True, frozen=True)
class GpuSnapshot:
    """GPU adapters present on the device. ``None`` if none were reported."""

    adapters: Annotated[tuple[GpuAdapterInfo, ...] | None, Field(alias="AvailableAdapters")] = None


@dataclass(slots=True, frozen=True)
class NetworkSnapshot:
    """Cumulative network byte counters, signed as the device reports them."""

    bytes_in: Annotated[int | None, Field(alias="NetworkInBytes")] = None
    bytes_out: Annotated[int | None, Field(alias="NetworkOutBytes")] = None


@dataclass(slots=True, frozen=True)
class SystemPerformanceSnapshot:
    """Aggregate system counters at snapshot time."""

    available_pages: Annotated[int | None, Field(alias="AvailablePages")] = None
    commit_limit: Annotated[int | None, Field(alias="CommitLimit")] = None
    committed_pages: Annotated[int | None, Field(alias="CommittedPages")] = None
    cpu_load: Annotated[int | None, Field(alias="CpuLoad")] = None  # 0 - 100
    io_other_speed: Annotated[int | None, Field(alias="IOOtherSpeed")] = None
    io_read_speed: Annotated[int | None, Field(alias="IOReadSpeed")] = None
    io_write_speed: Annotated[int | None, Field(alias="IOWriteSpeed")] = None
    non_paged_pool_pages: Annotated[int | None, Field(alias="NonPagedPoolPages")] = None
    page_size: Annotated[int | None, Field(alias="PageSize")] = None  # Bytes
    paged_pool_pages: Annotated[int | None, Field(alias="PagedPoolPages")] = None
    total_installed_kb: Annotated[int | None, Field(alias="TotalInstalledInKb")] = None
    total_pages: Annotated[int | None, Field(alias="TotalPages")] = None
    gpu_data: Annotated[GpuSnapshot | None, Field(alias="GPUData")] = None
    network_data: Annotated[NetworkSnapshot | None, Field(alias="NetworkingData")] = None


_process_adapter = TypeAdapter(ProcessSnapshot)
_system_perf_adapter = TypeAdapter(SystemPerformanceSnapshot)


def _parse(adapter: TypeAdapter[T], raw: str | bytes) -> T:
    try:
        return adapter.validate_json(raw)
    except ValidationError as e:
        raise DeserializationError(f"Unexpected response body: {e}") from e


def parse_processes(raw: str | bytes) -> ProcessSnapshot:
    """Build a ProcessSnapshot from a ``api/resourcemanager/processes`` body."""
    return _parse(_process_adapter, raw)


def parse_system_performance(raw: str | bytes) -> SystemPerformanceSnapshot:
    """Build a SystemPerformanceSnapshot from a ``api/resourcemanager/systemperf`` body."""
    return _parse(_system_perf_adapter, raw)


def dump(snapshot: ProcessSnapshot | SystemPerformanceSnapshot) -> dict[str, Any]:
    """
    Serialize a snapshot back to the device's JSON field names.

    Absent attributes are left out, so ``dump(parse_...(body))`` keeps exactly
    the fields the device reported.
    """
    adapter = _process_adapter if isinstance(snapshot, ProcessSnapshot) else _system_perf_adapter
    return adapter.dump_python(snapshot, mode="json", by_alias=True, exclude_none=True)
