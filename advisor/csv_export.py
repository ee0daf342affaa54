import csv
import logging

from advisor.recommendation import Reason, Recommendation

logger = logging.getLogger('drs_advisor')

FIELDNAMES = [
    'Cluster',
    'VM_to_Move',
    'Reason',
    'Source_Host',
    'Source_Host_CPU',
    'Source_Host_Mem',
    'Recommended_Destination_Host',
    'Destination_Host_CPU',
    'Destination_Host_Mem',
]

ABSENT = '-'


def format_percent(value):
    if value is None:
        return ABSENT
    return f"{value}%"


def parse_percent(text):
    text = (text or '').strip()
    if not text or text == ABSENT:
        return None
    return float(text.rstrip('%'))


def recommendation_to_row(rec):
    return {
        'Cluster': rec.cluster,
        'VM_to_Move': rec.vm_name,
        'Reason': rec.reason.value,
        'Source_Host': rec.source_host,
        'Source_Host_CPU': format_percent(rec.source_cpu),
        'Source_Host_Mem': format_percent(rec.source_memory),
        'Recommended_Destination_Host': rec.destination_host,
        'Destination_Host_CPU': format_percent(rec.destination_cpu),
        'Destination_Host_Mem': format_percent(rec.destination_memory),
    }


def row_to_recommendation(row):
    """Raises ValueError for an unknown reason or a non-numeric utilization cell."""
    return Recommendation(
        cluster=row['Cluster'],
        vm_name=row['VM_to_Move'],
        reason=Reason(row['Reason']),
        source_host=row['Source_Host'],
        destination_host=row['Recommended_Destination_Host'],
        source_cpu=parse_percent(row['Source_Host_CPU']),
        source_memory=parse_percent(row['Source_Host_Mem']),
        destination_cpu=parse_percent(row['Destination_Host_CPU']),
        destination_memory=parse_percent(row['Destination_Host_Mem']),
    )


def export_recommendations(path, recommendations):
    """
    Write recommendations to a CSV file, one row per move.
    The column set and order is what a detached executor reads back.
    """
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        writer.writeheader()
        for rec in recommendations:
            writer.writerow(recommendation_to_row(rec))
    logger.info(f"[CsvExport] Wrote {len(recommendations)} recommendation(s) to '{path}'.")


def load_recommendations(path):
    with open(path, 'r', newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        missing = [name for name in FIELDNAMES if name not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"Recommendation file '{path}' is missing columns: {', '.join(missing)}")
        recommendations = [row_to_recommendation(row) for row in reader]
    logger.info(f"[CsvExport] Loaded {len(recommendations)} recommendation(s) from '{path}'.")
    return recommendations
