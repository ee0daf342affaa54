import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

logger = logging.getLogger('drs_advisor')

DEFAULT_AGGRESSIVENESS = 3

# Standard deviations above the mean a host may sit before it counts as over-utilized.
AGGRESSIVENESS_MULTIPLIERS = {
    1: 1.5,
    2: 1.25,
    3: 1.0,
    4: 0.75,
    5: 0.5
}


def calculate_mean(values):
    return sum(values) / len(values) if values else 0.0


def calculate_std_dev(values):
    """Sample standard deviation (N-1 divisor); 0 for fewer than two samples."""
    n = len(values)
    if n < 2:
        return 0.0
    mean = calculate_mean(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / (n - 1))


def get_threshold_multiplier(aggressiveness=DEFAULT_AGGRESSIVENESS):
    multiplier = AGGRESSIVENESS_MULTIPLIERS.get(aggressiveness)
    if multiplier is None:
        multiplier = AGGRESSIVENESS_MULTIPLIERS[DEFAULT_AGGRESSIVENESS]
        logger.warning(f"[LoadEvaluator] Invalid aggressiveness level: {aggressiveness}. Defaulting to multiplier: {multiplier}.")
    return multiplier


def calculate_threshold(mean, std_dev, aggressiveness=DEFAULT_AGGRESSIVENESS):
    return mean + std_dev * get_threshold_multiplier(aggressiveness)


@dataclass
class UtilizationReport:
    host_percentages: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    cpu_mean: float = 0.0
    memory_mean: float = 0.0
    cpu_std_dev: float = 0.0
    memory_std_dev: float = 0.0
    cpu_threshold: float = 0.0
    memory_threshold: float = 0.0
    over_utilized: List[str] = field(default_factory=list)
    under_utilized: List[str] = field(default_factory=list)


class LoadEvaluator:
    def __init__(self, hosts):
        self.hosts = hosts
        self._cache_percentages = None

    def get_host_percentages_map(self):
        """
        Maps each host name to its (CPU%, Mem%) pair.
        Hosts with zero capacity report 0% for that resource.
        """
        if self._cache_percentages is not None:
            return self._cache_percentages

        percentages = {}
        for host in self.hosts:
            percentages[host.name] = (host.cpu_percent, host.memory_percent)
            logger.debug(f"[LoadEvaluator] Host '{host.name}': CPU {host.cpu_percent:.2f}% "
                         f"({host.cpu_used}/{host.cpu_capacity} MHz), Mem {host.memory_percent:.2f}% "
                         f"({host.memory_used}/{host.memory_capacity} GB)")
        self._cache_percentages = percentages
        return percentages

    def evaluate(self, aggressiveness=DEFAULT_AGGRESSIVENESS):
        percentages = self.get_host_percentages_map()
        cpu_values = [cpu for cpu, _ in percentages.values()]
        mem_values = [mem for _, mem in percentages.values()]

        report = UtilizationReport(host_percentages=dict(percentages))
        report.cpu_mean = calculate_mean(cpu_values)
        report.memory_mean = calculate_mean(mem_values)
        report.cpu_std_dev = calculate_std_dev(cpu_values)
        report.memory_std_dev = calculate_std_dev(mem_values)
        report.cpu_threshold = calculate_threshold(report.cpu_mean, report.cpu_std_dev, aggressiveness)
        report.memory_threshold = calculate_threshold(report.memory_mean, report.memory_std_dev, aggressiveness)

        logger.info(f"[LoadEvaluator] CPU mean {report.cpu_mean:.2f}%, stddev {report.cpu_std_dev:.2f}, threshold {report.cpu_threshold:.2f}% | "
                    f"Mem mean {report.memory_mean:.2f}%, stddev {report.memory_std_dev:.2f}, threshold {report.memory_threshold:.2f}% "
                    f"(Aggressiveness: {aggressiveness})")

        under = []
        for host_name, (cpu, mem) in percentages.items():
            if cpu > report.cpu_threshold or mem > report.memory_threshold:
                report.over_utilized.append(host_name)
                logger.info(f"[LoadEvaluator] Host '{host_name}' is over-utilized (CPU {cpu:.2f}%, Mem {mem:.2f}%).")
            elif cpu < report.cpu_mean and mem < report.memory_mean:
                under.append((cpu, mem, host_name))

        under.sort(key=lambda entry: (entry[0], entry[1]))
        report.under_utilized = [host_name for _, _, host_name in under]
        logger.debug(f"[LoadEvaluator] Under-utilized hosts (least loaded first): {report.under_utilized}")
        return report
