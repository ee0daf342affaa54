import logging

from pyVmomi import vim

from advisor.inventory import (AffinityRule, ClusterInventory, Host, HostAffinityRule, HostState,
                               Inventory, PowerState, RuleKind, VM)

logger = logging.getLogger('drs_advisor')

ENTER_MAINTENANCE_TASK = 'HostSystem.enterMaintenanceMode'
MB_PER_GB = 1024.0
BYTES_PER_GB = 1024.0 ** 3


class ClusterState:
    """
    Reads clusters, hosts, VMs, DRS rules and groups from vCenter and turns
    them into an Inventory snapshot. This is the only place that talks to the
    live endpoint during analysis.
    """

    def __init__(self, service_instance, cluster_name=None):
        self.service_instance = service_instance
        self.cluster_name = cluster_name

    def _get_clusters(self):
        content = self.service_instance.RetrieveContent()
        container = content.viewManager.CreateContainerView(
            content.rootFolder, [vim.ClusterComputeResource], True
        )
        clusters = list(container.view)
        container.Destroy()

        if self.cluster_name:
            clusters = [c for c in clusters if c.name == self.cluster_name]
            if not clusters:
                logger.warning(f"[ClusterState] No cluster named '{self.cluster_name}' found.")
        return clusters

    def get_inventory(self):
        inventory = Inventory()
        for cluster_obj in self._get_clusters():
            inventory.clusters.append(self.build_cluster_inventory(cluster_obj))
        logger.info(f"[ClusterState] Collected {len(inventory.clusters)} cluster(s).")
        return inventory

    def build_cluster_inventory(self, cluster_obj):
        cluster = ClusterInventory(name=cluster_obj.name)
        for host_obj in cluster_obj.host:
            host = self._build_host(host_obj)
            if self._is_entering_maintenance(host_obj):
                if host.state == HostState.CONNECTED:
                    host.state = HostState.ENTERING_MAINTENANCE
                cluster.entering_maintenance.add(host.name)
            cluster.hosts.append(host)

            for vm_obj in host_obj.vm:
                if vm_obj.config is None or vm_obj.config.template:
                    continue
                cluster.vms.append(self._build_vm(vm_obj, host.name))

        config = getattr(cluster_obj, 'configurationEx', None)
        if config is not None:
            self._collect_groups(cluster, config.group or [])
            self._collect_rules(cluster, config.rule or [])

        logger.info(f"[ClusterState] Cluster '{cluster.name}': {len(cluster.hosts)} hosts, {len(cluster.vms)} VMs, "
                    f"{len(cluster.affinity_rules) + len(cluster.host_affinity_rules)} rules, "
                    f"{len(cluster.entering_maintenance)} host(s) entering maintenance.")
        return cluster

    def _build_host(self, host_obj):
        runtime = host_obj.runtime
        if runtime.connectionState != 'connected':
            state = HostState.DISCONNECTED
        elif runtime.inMaintenanceMode:
            state = HostState.MAINTENANCE
        else:
            state = HostState.CONNECTED

        hardware = host_obj.summary.hardware
        stats = host_obj.summary.quickStats
        return Host(
            name=host_obj.name,
            state=state,
            cpu_capacity=float(hardware.cpuMhz * hardware.numCpuCores) if hardware else 0.0,
            cpu_used=float(stats.overallCpuUsage or 0) if stats else 0.0,
            memory_capacity=hardware.memorySize / BYTES_PER_GB if hardware else 0.0,
            memory_used=(stats.overallMemoryUsage or 0) / MB_PER_GB if stats else 0.0
        )

    def _is_entering_maintenance(self, host_obj):
        for task in host_obj.recentTask or []:
            info = task.info
            if info.descriptionId == ENTER_MAINTENANCE_TASK and info.state == vim.TaskInfo.State.running:
                logger.info(f"[ClusterState] Host '{host_obj.name}' has a running enter-maintenance task.")
                return True
        return False

    def _build_vm(self, vm_obj, host_name):
        stats = vm_obj.summary.quickStats
        return VM(
            name=vm_obj.name,
            host=host_name,
            power_state=PowerState.ON if vm_obj.runtime.powerState == 'poweredOn' else PowerState.OFF,
            cpu_usage=float(stats.overallCpuUsage or 0),
            memory_usage=(stats.guestMemoryUsage or 0) / MB_PER_GB
        )

    def _collect_groups(self, cluster, groups):
        for group in groups:
            if isinstance(group, vim.cluster.VmGroup):
                cluster.vm_groups[group.name] = [vm.name for vm in group.vm or []]
            elif isinstance(group, vim.cluster.HostGroup):
                cluster.host_groups[group.name] = [host.name for host in group.host or []]

    def _collect_rules(self, cluster, rules):
        for rule in rules:
            if isinstance(rule, (vim.cluster.AffinityRuleSpec, vim.cluster.AntiAffinityRuleSpec)):
                # VM-VM rules list their VMs directly; give each one its own group.
                group_name = f"rule:{rule.name}"
                cluster.vm_groups[group_name] = [vm.name for vm in rule.vm or []]
                kind = RuleKind.KEEP_TOGETHER if isinstance(rule, vim.cluster.AffinityRuleSpec) else RuleKind.SEPARATE
                cluster.affinity_rules.append(AffinityRule(
                    name=rule.name, kind=kind, vm_group=group_name, enabled=bool(rule.enabled)
                ))
            elif isinstance(rule, vim.cluster.VmHostRuleInfo):
                required = bool(rule.affineHostGroupName)
                cluster.host_affinity_rules.append(HostAffinityRule(
                    name=rule.name,
                    vm_group=rule.vmGroupName,
                    host_group=rule.affineHostGroupName or rule.antiAffineHostGroupName,
                    required=required,
                    enabled=bool(rule.enabled)
                ))
            else:
                logger.debug(f"[ClusterState] Rule '{getattr(rule, 'name', rule)}' of type {type(rule).__name__} is not evaluated.")
