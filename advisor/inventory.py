import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

logger = logging.getLogger('drs_advisor')


class MalformedInventoryError(ValueError):
    """Structural problem in a cluster snapshot; aborts analysis of that cluster only."""


class HostState(Enum):
    CONNECTED = 'Connected'
    MAINTENANCE = 'Maintenance'
    ENTERING_MAINTENANCE = 'EnteringMaintenance'
    DISCONNECTED = 'Disconnected'


class PowerState(Enum):
    ON = 'On'
    OFF = 'Off'


class RuleKind(Enum):
    KEEP_TOGETHER = 'KeepTogether'
    SEPARATE = 'Separate'


@dataclass
class Host:
    name: str
    state: HostState = HostState.CONNECTED
    cpu_capacity: float = 0.0  # MHz
    cpu_used: float = 0.0
    memory_capacity: float = 0.0  # GB
    memory_used: float = 0.0

    @property
    def cpu_percent(self):
        return (self.cpu_used / self.cpu_capacity * 100.0) if self.cpu_capacity > 0 else 0.0

    @property
    def memory_percent(self):
        return (self.memory_used / self.memory_capacity * 100.0) if self.memory_capacity > 0 else 0.0


@dataclass
class VM:
    name: str
    host: str
    power_state: PowerState = PowerState.ON
    cpu_usage: float = 0.0  # MHz
    memory_usage: float = 0.0  # GB

    @property
    def powered_on(self):
        return self.power_state == PowerState.ON


@dataclass
class AffinityRule:
    name: str
    kind: RuleKind
    vm_group: Optional[str]
    enabled: bool = True


@dataclass
class HostAffinityRule:
    name: str
    vm_group: Optional[str]
    host_group: Optional[str]
    required: bool = True  # False means "must not run in group"
    enabled: bool = True


@dataclass
class ClusterInventory:
    """
    Point-in-time snapshot of one cluster.
    Groups map a group name to its ordered member names.
    """
    name: str
    hosts: List[Host] = field(default_factory=list)
    vms: List[VM] = field(default_factory=list)
    affinity_rules: List[AffinityRule] = field(default_factory=list)
    host_affinity_rules: List[HostAffinityRule] = field(default_factory=list)
    vm_groups: Dict[str, List[str]] = field(default_factory=dict)
    host_groups: Dict[str, List[str]] = field(default_factory=dict)
    entering_maintenance: Set[str] = field(default_factory=set)

    def get_host(self, host_name):
        for host in self.hosts:
            if host.name == host_name:
                return host
        return None

    def get_vm(self, vm_name):
        for vm in self.vms:
            if vm.name == vm_name:
                return vm
        return None

    def get_vms_on_host(self, host_name):
        return [vm for vm in self.vms if vm.host == host_name]

    def is_maintenance_host(self, host):
        return (host.state in (HostState.MAINTENANCE, HostState.ENTERING_MAINTENANCE)
                or host.name in self.entering_maintenance)

    def get_eligible_hosts(self):
        """Connected hosts that are neither in nor entering maintenance."""
        return [h for h in self.hosts if h.state == HostState.CONNECTED and not self.is_maintenance_host(h)]

    def validate(self):
        """
        Raise MalformedInventoryError when host or VM names collide, or a VM
        points at a host that is not part of this cluster.
        """
        host_names = set()
        for host in self.hosts:
            if not host.name:
                raise MalformedInventoryError(f"Cluster '{self.name}' has a host without a name.")
            if host.name in host_names:
                raise MalformedInventoryError(f"Cluster '{self.name}' lists host '{host.name}' more than once.")
            host_names.add(host.name)
            if host.state == HostState.CONNECTED and (host.cpu_capacity <= 0 or host.memory_capacity <= 0):
                logger.warning(f"[ClusterInventory] Connected host '{host.name}' in cluster '{self.name}' reports zero capacity.")

        vm_names = set()
        for vm in self.vms:
            if not vm.name:
                raise MalformedInventoryError(f"Cluster '{self.name}' has a VM without a name.")
            if vm.name in vm_names:
                raise MalformedInventoryError(f"Cluster '{self.name}' lists VM '{vm.name}' more than once.")
            vm_names.add(vm.name)
            if vm.host not in host_names:
                raise MalformedInventoryError(f"VM '{vm.name}' in cluster '{self.name}' resides on unknown host '{vm.host}'.")


@dataclass
class Inventory:
    clusters: List[ClusterInventory] = field(default_factory=list)

    def get_cluster(self, cluster_name):
        for cluster in self.clusters:
            if cluster.name == cluster_name:
                return cluster
        return None
