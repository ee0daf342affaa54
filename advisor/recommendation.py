from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Reason(Enum):
    MAINTENANCE_EVACUATION = 'MaintenanceEvacuation'
    KEEP_TOGETHER_MIGRATION = 'KeepTogetherMigration'
    REBALANCE = 'Rebalance'
    LOAD_BALANCING = 'LoadBalancing'


@dataclass(frozen=True)
class Recommendation:
    """
    One proposed VM move. Utilization fields are host percentages at snapshot
    time, rounded to two decimals; they stay None for evacuation and
    load-balancing moves.
    """
    cluster: str
    vm_name: str
    reason: Reason
    source_host: str
    destination_host: str
    source_cpu: Optional[float] = None
    source_memory: Optional[float] = None
    destination_cpu: Optional[float] = None
    destination_memory: Optional[float] = None

    def is_complete(self):
        return bool(self.vm_name) and bool(self.destination_host)


def round_percent(value):
    return None if value is None else round(value, 2)
