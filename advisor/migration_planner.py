import logging

from advisor.constraint_manager import CapacityLimits
from advisor.recommendation import Reason, Recommendation, round_percent

logger = logging.getLogger('drs_advisor')


class MigrationPlanner:
    """
    Moves load off over-utilized hosts onto under-utilized ones.
    Each destination host receives at most one move (or one keep-together
    group) per run.
    """

    def __init__(self, cluster, constraint_manager, report):
        self.cluster = cluster
        self.constraint_manager = constraint_manager
        self.report = report
        self.capacity_limits = CapacityLimits(report.cpu_threshold, report.memory_threshold)

    def _make_recommendation(self, vm, destination, reason):
        source_cpu, source_mem = self.report.host_percentages.get(vm.host, (None, None))
        dest_cpu, dest_mem = self.report.host_percentages.get(destination, (None, None))
        return Recommendation(
            cluster=self.cluster.name,
            vm_name=vm.name,
            reason=reason,
            source_host=vm.host,
            destination_host=destination,
            source_cpu=round_percent(source_cpu),
            source_memory=round_percent(source_mem),
            destination_cpu=round_percent(dest_cpu),
            destination_memory=round_percent(dest_mem)
        )

    def plan_migrations(self, planned_placements=None):
        """
        planned_placements (VM name -> destination) holds moves chosen earlier
        in this run, such as evacuations; it is updated with every new move.
        """
        if planned_placements is None:
            planned_placements = {}
        if not self.report.over_utilized or not self.report.under_utilized:
            logger.info(f"[MigrationPlanner] Cluster '{self.cluster.name}': over-utilized={self.report.over_utilized}, "
                        f"under-utilized={self.report.under_utilized}. No rebalancing needed.")
            return []

        available_hosts = list(self.report.under_utilized)
        handled_vms = set()
        migrations = []

        if self.constraint_manager.bypass_rules:
            logger.info("[MigrationPlanner] Rules bypassed: keep-together groups are not moved as units.")
        else:
            migrations.extend(self._plan_keep_together_migrations(available_hosts, handled_vms, planned_placements))
        migrations.extend(self._plan_individual_migrations(available_hosts, handled_vms, planned_placements))

        logger.info(f"[MigrationPlanner] Cluster '{self.cluster.name}': {len(migrations)} rebalancing migration(s) planned.")
        return migrations

    def _plan_keep_together_migrations(self, available_hosts, handled_vms, planned_placements):
        logger.info("[MigrationPlanner] Step 1: Keep-together groups on over-utilized hosts.")
        over_utilized = set(self.report.over_utilized)
        migrations = []

        for rule_name, member_names in self.constraint_manager.keep_together_groups:
            members = [self.cluster.get_vm(name) for name in member_names]
            members = [vm for vm in members if vm is not None]
            if not any(vm.host in over_utilized for vm in members):
                continue
            names = [vm.name for vm in members]
            if any(vm.name in planned_placements or vm.name in handled_vms for vm in members):
                logger.warning(f"[MigrationPlanner] Keep-together group '{rule_name}' has members already planned to move. Group left in place.")
                handled_vms.update(names)
                continue

            total_cpu = sum(vm.cpu_usage for vm in members)
            total_mem = sum(vm.memory_usage for vm in members)
            logger.debug(f"[MigrationPlanner] Group '{rule_name}' {names}: demand {total_cpu} MHz, {total_mem} GB.")

            destination = None
            for host_name in available_hosts:
                if self.constraint_manager.can_place(names, host_name, planned_placements, self.capacity_limits):
                    destination = host_name
                    break

            if destination is None:
                logger.warning(f"[MigrationPlanner] No destination found for keep-together group '{rule_name}' {names}. Group left in place.")
                handled_vms.update(names)
                continue

            available_hosts.remove(destination)
            for vm in members:
                handled_vms.add(vm.name)
                if vm.host == destination:
                    continue
                migrations.append(self._make_recommendation(vm, destination, Reason.KEEP_TOGETHER_MIGRATION))
                planned_placements[vm.name] = destination
                logger.info(f"[MigrationPlanner] Keep-together move: VM '{vm.name}' from '{vm.host}' to '{destination}' (group '{rule_name}').")
        return migrations

    def _plan_individual_migrations(self, available_hosts, handled_vms, planned_placements):
        logger.info("[MigrationPlanner] Step 2: Individual VMs on over-utilized hosts.")
        candidates = []
        for host_name in self.report.over_utilized:
            for vm in self.cluster.get_vms_on_host(host_name):
                if not vm.powered_on or vm.name in handled_vms or vm.name in planned_placements:
                    continue
                candidates.append(vm)
        # Largest first while destination capacity is still plentiful.
        candidates.sort(key=lambda vm: (vm.cpu_usage, vm.memory_usage), reverse=True)

        migrations = []
        for vm in candidates:
            if not available_hosts:
                logger.info("[MigrationPlanner] No under-utilized destinations left.")
                break

            destination = None
            for host_name in available_hosts:
                if self.constraint_manager.can_place([vm.name], host_name, planned_placements, self.capacity_limits):
                    destination = host_name
                    break

            if destination is None:
                if self.constraint_manager.is_subject_to_rules(vm.name):
                    logger.warning(f"[MigrationPlanner] No destination for VM '{vm.name}' on '{vm.host}' satisfies its placement rules.")
                else:
                    logger.debug(f"[MigrationPlanner] No destination with capacity for VM '{vm.name}'.")
                continue

            available_hosts.remove(destination)
            handled_vms.add(vm.name)
            planned_placements[vm.name] = destination
            migrations.append(self._make_recommendation(vm, destination, Reason.REBALANCE))
            logger.info(f"[MigrationPlanner] Rebalance: move VM '{vm.name}' from '{vm.host}' to '{destination}'.")
        return migrations
