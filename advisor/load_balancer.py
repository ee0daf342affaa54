import fnmatch
import logging

from advisor.recommendation import Reason, Recommendation

logger = logging.getLogger('drs_advisor')

DEFAULT_SERVICE_VM_PATTERNS = ['vCLS*']


def get_allowed_range(total_vms, host_count):
    """(min, max) powered-on VMs per host for an even spread."""
    ideal = total_vms // host_count
    remainder = total_vms % host_count
    return ideal, ideal if remainder == 0 else ideal + 1


class LoadBalancer:
    """
    Equalizes the number of powered-on VMs per host, ignoring CPU and memory.
    Cluster service VMs are neither counted nor moved.
    """

    def __init__(self, cluster, constraint_manager, service_vm_patterns=None):
        self.cluster = cluster
        self.constraint_manager = constraint_manager
        self.service_vm_patterns = DEFAULT_SERVICE_VM_PATTERNS if service_vm_patterns is None else service_vm_patterns

    def is_service_vm(self, vm_name):
        return any(fnmatch.fnmatchcase(vm_name, pattern) for pattern in self.service_vm_patterns)

    def get_vm_counts(self, host_names, planned_placements):
        """Powered-on, non-service VMs per host, counting planned moves at their destination."""
        counts = {name: 0 for name in host_names}
        for vm in self.cluster.vms:
            if not vm.powered_on or self.is_service_vm(vm.name):
                continue
            host_name = planned_placements.get(vm.name, vm.host)
            if host_name in counts:
                counts[host_name] += 1
        return counts

    def plan(self, host_names, planned_placements=None):
        if planned_placements is None:
            planned_placements = {}
        if not host_names:
            logger.info(f"[LoadBalancer] No eligible hosts in cluster '{self.cluster.name}'.")
            return []

        counts = self.get_vm_counts(host_names, planned_placements)
        total = sum(counts.values())
        min_count, max_count = get_allowed_range(total, len(host_names))
        logger.info(f"[LoadBalancer] Cluster '{self.cluster.name}': {total} VM(s) on {len(host_names)} host(s), "
                    f"allowed range [{min_count}, {max_count}]. Counts: {counts}")

        excess = {name: count - max_count for name, count in counts.items() if count > max_count}
        capacity = {name: min_count - count for name, count in counts.items() if count < min_count}

        # Hosts already inside the range absorb whatever mismatch remains between
        # surplus and deficit, so every host can end up inside [min, max].
        shortfall = sum(capacity.values()) - sum(excess.values())
        if shortfall > 0:
            for name in sorted(counts, key=lambda n: counts[n], reverse=True):
                if shortfall == 0:
                    break
                if counts[name] - excess.get(name, 0) > min_count:
                    excess[name] = excess.get(name, 0) + 1
                    shortfall -= 1
        elif shortfall < 0:
            for name in sorted(counts, key=lambda n: counts[n]):
                if shortfall == 0:
                    break
                room = max_count - counts[name] - capacity.get(name, 0)
                if room > 0:
                    extra = min(room, -shortfall)
                    capacity[name] = capacity.get(name, 0) + extra
                    shortfall += extra

        if not excess:
            logger.info(f"[LoadBalancer] Cluster '{self.cluster.name}' is already balanced by VM count.")
            return []

        sources = sorted(excess.items(), key=lambda item: item[1], reverse=True)
        targets = [[name, cap] for name, cap in sorted(capacity.items(), key=lambda item: item[1], reverse=True)]
        logger.debug(f"[LoadBalancer] Sources (excess): {sources}. Targets (capacity): {targets}")

        recommendations = []
        for source_name, source_excess in sources:
            movable = [vm for vm in self.cluster.get_vms_on_host(source_name)
                       if vm.powered_on and not self.is_service_vm(vm.name) and vm.name not in planned_placements]
            # Smallest first: cheapest to move, and large VMs keep their locality.
            movable.sort(key=lambda vm: (vm.cpu_usage, vm.memory_usage))

            moved = 0
            for vm in movable:
                if moved >= source_excess or not targets:
                    break
                target = None
                for entry in targets:
                    if entry[1] > 0 and self.constraint_manager.can_place([vm.name], entry[0], planned_placements):
                        target = entry
                        break
                if target is None:
                    if self.constraint_manager.is_subject_to_rules(vm.name):
                        logger.warning(f"[LoadBalancer] No target host for VM '{vm.name}' satisfies its placement rules.")
                    continue

                recommendations.append(Recommendation(
                    cluster=self.cluster.name,
                    vm_name=vm.name,
                    reason=Reason.LOAD_BALANCING,
                    source_host=source_name,
                    destination_host=target[0]
                ))
                planned_placements[vm.name] = target[0]
                moved += 1
                target[1] -= 1
                if target[1] == 0:
                    targets.remove(target)
                logger.info(f"[LoadBalancer] Move VM '{vm.name}' from '{source_name}' to '{target[0]}'.")

            if moved < source_excess:
                logger.warning(f"[LoadBalancer] Host '{source_name}' still holds {source_excess - moved} VM(s) above its allowed count.")

        return recommendations
