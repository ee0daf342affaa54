import logging

from advisor.constraint_manager import ConstraintManager
from advisor.evacuation_planner import EvacuationPlanner
from advisor.inventory import MalformedInventoryError
from advisor.load_balancer import LoadBalancer
from advisor.load_evaluator import DEFAULT_AGGRESSIVENESS, AGGRESSIVENESS_MULTIPLIERS, LoadEvaluator
from advisor.migration_planner import MigrationPlanner

logger = logging.getLogger('drs_advisor')


class RecommendationEngine:
    """
    Runs evacuation, rebalancing and (optionally) count balancing for every
    cluster of an inventory snapshot and returns the combined, ordered
    recommendation list. Clusters never share state.
    """

    def __init__(self, inventory, aggressiveness=DEFAULT_AGGRESSIVENESS, bypass_rules=False,
                 balance=False, cluster_name=None, service_vm_patterns=None):
        if aggressiveness not in AGGRESSIVENESS_MULTIPLIERS:
            logger.warning(f"[RecommendationEngine] Invalid aggressiveness level: {aggressiveness}. Using {DEFAULT_AGGRESSIVENESS}.")
            aggressiveness = DEFAULT_AGGRESSIVENESS
        self.inventory = inventory
        self.aggressiveness = aggressiveness
        self.bypass_rules = bypass_rules
        self.balance = balance
        self.cluster_name = cluster_name
        self.service_vm_patterns = service_vm_patterns

    def get_target_clusters(self):
        if not self.cluster_name:
            return list(self.inventory.clusters)
        cluster = self.inventory.get_cluster(self.cluster_name)
        if cluster is None:
            logger.warning(f"[RecommendationEngine] Cluster '{self.cluster_name}' not found in inventory.")
            return []
        return [cluster]

    def analyze_cluster(self, cluster):
        logger.info(f"[RecommendationEngine] Analyzing cluster '{cluster.name}' "
                    f"({len(cluster.hosts)} hosts, {len(cluster.vms)} VMs)...")
        cluster.validate()
        constraint_manager = ConstraintManager(cluster, bypass_rules=self.bypass_rules)
        planned_placements = {}

        evacuations = EvacuationPlanner(cluster).plan()
        for rec in evacuations:
            planned_placements[rec.vm_name] = rec.destination_host

        eligible_hosts = cluster.get_eligible_hosts()
        rebalancing = []
        if len(eligible_hosts) < 2:
            logger.info(f"[RecommendationEngine] Cluster '{cluster.name}' has {len(eligible_hosts)} eligible host(s). Skipping utilization analysis.")
        else:
            report = LoadEvaluator(eligible_hosts).evaluate(self.aggressiveness)
            planner = MigrationPlanner(cluster, constraint_manager, report)
            rebalancing = planner.plan_migrations(planned_placements)

        balancing = []
        if self.balance:
            balancer = LoadBalancer(cluster, constraint_manager, self.service_vm_patterns)
            balancing = balancer.plan([host.name for host in eligible_hosts], planned_placements)

        logger.info(f"[RecommendationEngine] Cluster '{cluster.name}': {len(evacuations)} evacuation, "
                    f"{len(rebalancing)} rebalancing, {len(balancing)} load-balancing recommendation(s).")
        return evacuations + rebalancing + balancing

    def run(self):
        recommendations = []
        for cluster in self.get_target_clusters():
            try:
                recommendations.extend(self.analyze_cluster(cluster))
            except MalformedInventoryError as e:
                logger.error(f"[RecommendationEngine] Skipping cluster '{cluster.name}': {e}")
        return [rec for rec in recommendations if rec.is_complete()]


def log_recommendations(recommendations):
    """Write a per-move summary table through the application logger."""
    if not recommendations:
        logger.info("No migration recommendations.")
        return

    header = (f"{'Cluster':<20} {'VM':<25} {'Reason':<22} {'Source':<20} {'Src CPU':>8} {'Src Mem':>8} "
              f"{'Destination':<20} {'Dst CPU':>8} {'Dst Mem':>8}")
    logger.info("\n--- Migration Recommendations ---")
    logger.info(header)
    logger.info("-" * len(header))

    def pct(value):
        return '-' if value is None else f"{value:.1f}%"

    for rec in recommendations:
        logger.info(f"{rec.cluster:<20} {rec.vm_name:<25} {rec.reason.value:<22} {rec.source_host:<20} "
                    f"{pct(rec.source_cpu):>8} {pct(rec.source_memory):>8} {rec.destination_host:<20} "
                    f"{pct(rec.destination_cpu):>8} {pct(rec.destination_memory):>8}")
    logger.info(f"Total recommendations: {len(recommendations)}")
