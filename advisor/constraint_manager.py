import logging
from dataclasses import dataclass

from advisor.inventory import MalformedInventoryError, RuleKind

logger = logging.getLogger('drs_advisor')


@dataclass
class CapacityLimits:
    cpu_threshold: float
    memory_threshold: float


class ConstraintManager:
    """
    Answers whether a VM, or a keep-together group of VMs, may be placed on a
    host given current placements, moves already planned this run and the
    cluster's enabled rules. Rules are resolved and indexed by VM name once.
    """

    def __init__(self, cluster, bypass_rules=False):
        self.cluster = cluster
        self.bypass_rules = bypass_rules
        self.separate_groups = []          # list of member-name sets
        self.keep_together_groups = []     # list of (rule name, ordered member names)
        self._separate_index = {}          # vm name -> list of member-name sets
        self._keep_together_index = {}     # vm name -> list of member-name lists
        self._host_rule_index = {}         # vm name -> list of (required, host member set, group name)
        self._ruled_vms = set()
        self._hosts = {host.name: host for host in cluster.hosts}
        self._vms = {vm.name: vm for vm in cluster.vms}
        self._vms_by_host = {}
        for vm in cluster.vms:
            self._vms_by_host.setdefault(vm.host, []).append(vm.name)
        self._build_rule_index()

    def _resolve_vm_group(self, rule):
        if not rule.vm_group:
            raise MalformedInventoryError(f"Rule '{rule.name}' in cluster '{self.cluster.name}' has no VM group reference.")
        members = self.cluster.vm_groups.get(rule.vm_group)
        if members is None:
            logger.warning(f"[ConstraintManager] Rule '{rule.name}' references unknown VM group '{rule.vm_group}'. Rule ignored.")
        return members

    def _build_rule_index(self):
        for rule in self.cluster.affinity_rules:
            if not rule.enabled:
                logger.debug(f"[ConstraintManager] Rule '{rule.name}' is disabled. Skipping.")
                continue
            members = self._resolve_vm_group(rule)
            if members is None:
                continue

            if rule.kind == RuleKind.SEPARATE:
                member_set = set(members)
                self.separate_groups.append(member_set)
                for vm_name in member_set:
                    self._separate_index.setdefault(vm_name, []).append(member_set)
            else:
                member_list = list(members)
                self.keep_together_groups.append((rule.name, member_list))
                for vm_name in member_list:
                    self._keep_together_index.setdefault(vm_name, []).append(member_list)
            self._ruled_vms.update(members)

        for rule in self.cluster.host_affinity_rules:
            if not rule.enabled:
                logger.debug(f"[ConstraintManager] VM-host rule '{rule.name}' is disabled. Skipping.")
                continue
            if not rule.host_group:
                raise MalformedInventoryError(f"VM-host rule '{rule.name}' in cluster '{self.cluster.name}' has no host group reference.")
            members = self._resolve_vm_group(rule)
            if members is None:
                continue
            host_members = self.cluster.host_groups.get(rule.host_group)
            if host_members is None:
                logger.warning(f"[ConstraintManager] VM-host rule '{rule.name}' references unknown host group '{rule.host_group}'. Rule ignored.")
                continue

            entry = (rule.required, set(host_members), rule.host_group)
            for vm_name in members:
                self._host_rule_index.setdefault(vm_name, []).append(entry)
            self._ruled_vms.update(members)

        logger.info(f"[ConstraintManager] Cluster '{self.cluster.name}': {len(self.separate_groups)} separate rule(s), "
                    f"{len(self.keep_together_groups)} keep-together rule(s), {len(self._host_rule_index)} VM(s) under VM-host rules.")
        for vm_name, host_name in self.find_rule_conflicts():
            logger.warning(f"[ConstraintManager] VM '{vm_name}' is both required on and forbidden from host '{host_name}'.")

    def find_rule_conflicts(self):
        """Returns sorted (vm, host) pairs that a required and a forbidden VM-host rule both cover."""
        conflicts = []
        for vm_name, entries in self._host_rule_index.items():
            required_hosts = set()
            forbidden_hosts = set()
            for required, host_members, _ in entries:
                if required:
                    required_hosts |= host_members
                else:
                    forbidden_hosts |= host_members
            for host_name in required_hosts & forbidden_hosts:
                conflicts.append((vm_name, host_name))
        return sorted(conflicts)

    def is_subject_to_rules(self, vm_name):
        return vm_name in self._ruled_vms

    def _residents_after(self, host_name, vm_names, planned_placements):
        residents = {name for name in self._vms_by_host.get(host_name, [])
                     if planned_placements.get(name, host_name) == host_name}
        residents.update(name for name, dest in planned_placements.items() if dest == host_name)
        residents.update(vm_names)
        return residents

    def _violates_separate_rules(self, vm_names, host_name, planned_placements):
        residents = self._residents_after(host_name, vm_names, planned_placements)
        for vm_name in vm_names:
            for member_set in self._separate_index.get(vm_name, []):
                if len(member_set & residents) > 1:
                    logger.debug(f"[ConstraintManager] Placing {vm_names} on '{host_name}' breaks separate rule for {sorted(member_set)}.")
                    return True
        return False

    def _violates_keep_together_rules(self, vm_names, host_name, planned_placements):
        """A keep-together member may only join the rest of its group, or move together with it."""
        for vm_name in vm_names:
            for members in self._keep_together_index.get(vm_name, []):
                for other in members:
                    if other in vm_names or other not in self._vms:
                        continue
                    if planned_placements.get(other, self._vms[other].host) != host_name:
                        logger.debug(f"[ConstraintManager] Placing {vm_names} on '{host_name}' separates VM '{vm_name}' "
                                     f"from keep-together member '{other}'.")
                        return True
        return False

    def _violates_host_rules(self, vm_names, host_name):
        for vm_name in vm_names:
            entries = self._host_rule_index.get(vm_name)
            if not entries:
                continue
            required_groups = []
            for required, host_members, group_name in entries:
                if required:
                    required_groups.append(host_members)
                elif host_name in host_members:
                    logger.debug(f"[ConstraintManager] VM '{vm_name}' may not run in host group '{group_name}' ('{host_name}').")
                    return True
            if required_groups and not any(host_name in members for members in required_groups):
                logger.debug(f"[ConstraintManager] Host '{host_name}' is outside every required host group of VM '{vm_name}'.")
                return True
        return False

    def get_projected_percentages(self, vm_names, host_name, planned_placements):
        """
        CPU%/Mem% of host_name once vm_names and the moves already planned onto
        it land there. VMs already resident add nothing.
        """
        host = self._hosts[host_name]
        cpu_used = host.cpu_used
        mem_used = host.memory_used
        incoming = {name for name, dest in planned_placements.items() if dest == host_name}
        incoming.update(vm_names)
        for vm_name in incoming:
            vm = self._vms.get(vm_name)
            if vm is None or vm.host == host_name:
                continue
            cpu_used += vm.cpu_usage
            mem_used += vm.memory_usage
        cpu_pct = (cpu_used / host.cpu_capacity * 100.0) if host.cpu_capacity > 0 else 100.0
        mem_pct = (mem_used / host.memory_capacity * 100.0) if host.memory_capacity > 0 else 100.0
        return cpu_pct, mem_pct

    def _exceeds_capacity(self, vm_names, host_name, planned_placements, limits):
        cpu_pct, mem_pct = self.get_projected_percentages(vm_names, host_name, planned_placements)
        if cpu_pct > limits.cpu_threshold or mem_pct > limits.memory_threshold:
            logger.debug(f"[ConstraintManager] {vm_names} would not fit on '{host_name}' "
                         f"(proj CPU {cpu_pct:.1f}% / max {limits.cpu_threshold:.1f}%, proj Mem {mem_pct:.1f}% / max {limits.memory_threshold:.1f}%).")
            return True
        return False

    def can_place(self, vm_names, host_name, planned_placements=None, capacity_limits=None):
        """
        Checks separate rules, keep-together rules and VM-host rules, then (when
        capacity_limits is given) projected utilization against the
        over-utilization thresholds.
        planned_placements maps VM name to the destination already chosen for it this run.
        """
        if isinstance(vm_names, str):
            vm_names = [vm_names]
        planned_placements = planned_placements or {}

        if not self.bypass_rules:
            if self._violates_separate_rules(vm_names, host_name, planned_placements):
                return False
            if self._violates_keep_together_rules(vm_names, host_name, planned_placements):
                return False
            if self._violates_host_rules(vm_names, host_name):
                return False

        if capacity_limits is not None and self._exceeds_capacity(vm_names, host_name, planned_placements, capacity_limits):
            return False
        return True
