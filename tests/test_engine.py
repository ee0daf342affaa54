import logging

from advisor.engine import RecommendationEngine, log_recommendations
from advisor.evacuation_planner import EvacuationPlanner
from advisor.inventory import AffinityRule, ClusterInventory, HostState, Inventory, RuleKind
from advisor.recommendation import Reason, Recommendation


def final_placement(cluster, recs):
    placement = {vm.name: vm.host for vm in cluster.vms}
    placement.update({r.vm_name: r.destination_host for r in recs})
    return placement


def test_rebalancing_through_engine(overloaded_cluster):
    recs = RecommendationEngine(Inventory([overloaded_cluster])).run()

    assert [(r.vm_name, r.destination_host) for r in recs] == [('big', 'H2'), ('mid', 'H3'), ('small', 'H4')]
    assert {r.cluster for r in recs} == {'prod'}


def test_evacuations_come_first_and_are_not_balanced_again(make_host, make_vm):
    cluster = ClusterInventory(
        name='c',
        hosts=[make_host('A', state=HostState.MAINTENANCE), make_host('B'), make_host('C')],
        vms=[make_vm('vm1', 'A'), make_vm('b1', 'B', cpu=100), make_vm('b2', 'B', cpu=200),
             make_vm('b3', 'B', cpu=300)]
    )
    recs = RecommendationEngine(Inventory([cluster]), balance=True).run()

    assert [(r.vm_name, r.reason, r.destination_host) for r in recs] == [
        ('vm1', Reason.MAINTENANCE_EVACUATION, 'B'),
        ('b1', Reason.LOAD_BALANCING, 'C'),
        ('b2', Reason.LOAD_BALANCING, 'C'),
    ]


def test_each_vm_appears_at_most_once(overloaded_cluster, make_host, make_vm):
    overloaded_cluster.hosts.append(make_host('H5', state=HostState.MAINTENANCE))
    overloaded_cluster.vms.append(make_vm('evac', 'H5'))
    recs = RecommendationEngine(Inventory([overloaded_cluster]), balance=True).run()
    names = [r.vm_name for r in recs]

    assert recs[0].reason == Reason.MAINTENANCE_EVACUATION
    assert len(names) == len(set(names))


def test_single_eligible_host_still_evacuates(make_host, make_vm, caplog):
    cluster = ClusterInventory(
        name='small',
        hosts=[make_host('A', state=HostState.MAINTENANCE), make_host('B', 95, 95)],
        vms=[make_vm('vm1', 'A'), make_vm('vm2', 'B')]
    )
    with caplog.at_level(logging.INFO, logger='drs_advisor'):
        recs = RecommendationEngine(Inventory([cluster])).run()

    assert [(r.vm_name, r.destination_host) for r in recs] == [('vm1', 'B')]
    assert 'Skipping utilization analysis' in caplog.text


def test_malformed_cluster_is_skipped(make_host, make_vm, maintenance_cluster, caplog):
    broken = ClusterInventory(name='broken', hosts=[make_host('X')], vms=[make_vm('lost', 'nowhere')])
    recs = RecommendationEngine(Inventory([broken, maintenance_cluster])).run()

    assert "Skipping cluster 'broken'" in caplog.text
    assert {r.cluster for r in recs} == {'maint'}
    assert len(recs) == 2


def test_cluster_filter(overloaded_cluster, maintenance_cluster, caplog):
    inventory = Inventory([overloaded_cluster, maintenance_cluster])

    assert {r.cluster for r in RecommendationEngine(inventory, cluster_name='maint').run()} == {'maint'}
    assert RecommendationEngine(inventory, cluster_name='missing').run() == []
    assert "Cluster 'missing' not found" in caplog.text


def test_incomplete_recommendations_are_dropped(maintenance_cluster, monkeypatch):
    def fake_plan(self):
        return [
            Recommendation('maint', '', Reason.MAINTENANCE_EVACUATION, 'A', 'B'),
            Recommendation('maint', 'vm1', Reason.MAINTENANCE_EVACUATION, 'A', ''),
            Recommendation('maint', 'vm2', Reason.MAINTENANCE_EVACUATION, 'A', 'C'),
        ]
    monkeypatch.setattr(EvacuationPlanner, 'plan', fake_plan)

    recs = RecommendationEngine(Inventory([maintenance_cluster])).run()
    assert [r.vm_name for r in recs] == ['vm2']


def test_invalid_aggressiveness_falls_back(caplog):
    engine = RecommendationEngine(Inventory(), aggressiveness=7)

    assert engine.aggressiveness == 3
    assert 'Invalid aggressiveness level: 7' in caplog.text


def test_separate_rule_holds_across_combined_run(overloaded_cluster, make_vm):
    overloaded_cluster.vms.append(make_vm('peer', 'H2'))
    overloaded_cluster.affinity_rules.append(AffinityRule('apart', RuleKind.SEPARATE, 'pair'))
    overloaded_cluster.vm_groups['pair'] = ['big', 'peer']
    recs = RecommendationEngine(Inventory([overloaded_cluster]), balance=True).run()
    placement = final_placement(overloaded_cluster, recs)

    assert recs
    assert placement['big'] != placement['peer']


def test_summary_table(overloaded_cluster, caplog):
    recs = RecommendationEngine(Inventory([overloaded_cluster])).run()
    with caplog.at_level(logging.INFO, logger='drs_advisor'):
        log_recommendations(recs)

    assert 'Rebalance' in caplog.text
    assert '90.0%' in caplog.text
    assert 'Total recommendations: 3' in caplog.text


def test_empty_summary(caplog):
    with caplog.at_level(logging.INFO, logger='drs_advisor'):
        log_recommendations([])
    assert 'No migration recommendations.' in caplog.text


def test_count_balancing_keeps_affine_vms_together(make_host, make_vm):
    cluster = ClusterInventory(
        name='c',
        hosts=[make_host('A'), make_host('B'), make_host('C')],
        vms=[make_vm('kt1', 'A', cpu=10), make_vm('kt2', 'A', cpu=5000)]
            + [make_vm(f"a{i}", 'A') for i in range(3)]
            + [make_vm(f"b{i}", 'B') for i in range(5)],
        affinity_rules=[AffinityRule('together', RuleKind.KEEP_TOGETHER, 'pair')],
        vm_groups={'pair': ['kt1', 'kt2']}
    )
    recs = RecommendationEngine(Inventory([cluster]), balance=True).run()
    placement = final_placement(cluster, recs)

    assert recs
    assert placement['kt1'] == placement['kt2']
