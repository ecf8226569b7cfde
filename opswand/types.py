"""Type definitions for opswand."""

from dataclasses import dataclass, field
from enum import Enum

DEBUGGER_SUFFIX = "nais-debugger"
DEBUGGER_CONTAINER_NAME = "debugger"


class ContainerPhase(str, Enum):
    UNKNOWN = "Unknown"
    PENDING = "Pending"
    RUNNING = "Running"
    TERMINATED = "Terminated"


@dataclass(frozen=True)
class WorkloadReference:
    workload_name: str
    namespace: str
    context: str = ""  # kubectl context, empty means the current one


@dataclass
class DebugSessionConfig:
    workload: WorkloadReference
    debug_image: str
    copy_pod: bool = False
    by_pod: bool = False


@dataclass
class PodInfo:
    name: str
    namespace: str
    node_name: str
    status: str
    labels: dict[str, str]
    creation_time: str  # ISO 8601 timestamp from metadata.creationTimestamp
    ephemeral_containers: list[str] = field(default_factory=list)
    container_phases: dict[str, ContainerPhase] = field(default_factory=dict)


def debugger_pod_name(pod_name: str) -> str:
    return f"{pod_name}-{DEBUGGER_SUFFIX}"


@dataclass
class DebugContainer:
    owner_pod_name: str
    phase: ContainerPhase = ContainerPhase.UNKNOWN

    @property
    def generated_name(self) -> str:
        return debugger_pod_name(self.owner_pod_name)


@dataclass
class InstanceConfig:
    instance_name: str = ""
    tier: str = ""
    disk_size: int | None = None
    type: str = ""

    def describe(self) -> dict[str, str]:
        return {
            "Instance name": self.instance_name or "-",
            "Tier": self.tier or "-",
            "Disk size": f"{self.disk_size} GB" if self.disk_size else "-",
            "Type": self.type or "-",
        }


@dataclass
class MigrationConfig:
    app_name: str
    namespace: str
    context: str = ""
    source: InstanceConfig = field(default_factory=InstanceConfig)
    target: InstanceConfig = field(default_factory=InstanceConfig)
