import pytest

from advisor.inventory import ClusterInventory, Host, HostState, PowerState, VM


def host(name, cpu_pct=10.0, mem_pct=10.0, state=HostState.CONNECTED):
    """Host with 10000 MHz / 100 GB so percentages equal used/100 and used."""
    return Host(name=name, state=state, cpu_capacity=10000.0, cpu_used=cpu_pct * 100.0,
                memory_capacity=100.0, memory_used=mem_pct)


def vm(name, host_name, cpu=100.0, mem=1.0, powered_on=True):
    return VM(name=name, host=host_name, power_state=PowerState.ON if powered_on else PowerState.OFF,
              cpu_usage=cpu, memory_usage=mem)


@pytest.fixture
def make_host():
    return host


@pytest.fixture
def make_vm():
    return vm


@pytest.fixture
def overloaded_cluster():
    """
    H1 is over-utilized at level 3 (CPU 90% > ~74%, Mem 80% > ~66.5%);
    H2, H3, H4 are under-utilized, least loaded first.
    """
    return ClusterInventory(
        name='prod',
        hosts=[host('H1', 90, 80), host('H2', 20, 20), host('H3', 25, 25), host('H4', 30, 30)],
        vms=[
            vm('big', 'H1', cpu=3000, mem=20),
            vm('mid', 'H1', cpu=2000, mem=10),
            vm('small', 'H1', cpu=1000, mem=5),
            vm('tiny', 'H1', cpu=500, mem=1),
            vm('off', 'H1', cpu=0, mem=0, powered_on=False),
        ]
    )


@pytest.fixture
def maintenance_cluster():
    return ClusterInventory(
        name='maint',
        hosts=[host('A', state=HostState.MAINTENANCE), host('B'), host('C')],
        vms=[vm('vm1', 'A'), vm('vm2', 'A')]
    )
