import logging

from advisor.inventory import HostState
from advisor.recommendation import Reason, Recommendation

logger = logging.getLogger('drs_advisor')


class EvacuationPlanner:
    """
    Empties hosts that are in, or entering, maintenance mode.
    Placement rules are not consulted: vacating the host comes first.
    """

    def __init__(self, cluster):
        self.cluster = cluster

    def get_maintenance_hosts(self):
        return [host for host in self.cluster.hosts if self.cluster.is_maintenance_host(host)]

    def get_destination_pool(self):
        return [host.name for host in self.cluster.hosts
                if host.state == HostState.CONNECTED and not self.cluster.is_maintenance_host(host)]

    def plan(self):
        maintenance_hosts = self.get_maintenance_hosts()
        if not maintenance_hosts:
            logger.debug(f"[EvacuationPlanner] No hosts in maintenance in cluster '{self.cluster.name}'.")
            return []

        pool = self.get_destination_pool()
        recommendations = []
        counter = 0
        for host in maintenance_hosts:
            vms = self.cluster.get_vms_on_host(host.name)
            logger.info(f"[EvacuationPlanner] Host '{host.name}' ({host.state.value}) must be evacuated: {len(vms)} VM(s).")
            if not vms:
                continue
            if not pool:
                logger.warning(f"[EvacuationPlanner] No available hosts to evacuate '{host.name}' in cluster '{self.cluster.name}'. "
                               f"{len(vms)} VM(s) left in place: {[vm.name for vm in vms]}")
                continue

            for vm in vms:
                destination = pool[counter % len(pool)]
                counter += 1
                recommendations.append(Recommendation(
                    cluster=self.cluster.name,
                    vm_name=vm.name,
                    reason=Reason.MAINTENANCE_EVACUATION,
                    source_host=host.name,
                    destination_host=destination
                ))
                logger.info(f"[EvacuationPlanner] Evacuate VM '{vm.name}' from '{host.name}' to '{destination}'.")
        return recommendations
