#!/usr/bin/env python3

import argparse
import getpass
import logging
import sys

from advisor.cluster_state import ClusterState
from advisor.config_loader import ConfigLoader
from advisor.connection_manager import ConnectionManager
from advisor.csv_export import export_recommendations, load_recommendations
from advisor.engine import RecommendationEngine, log_recommendations
from advisor.scheduler import Scheduler

logger = logging.getLogger('drs_advisor')


def parse_args(argv=None):
    """
    Parse the command-line arguments.
    """
    parser = argparse.ArgumentParser(description="DRS Advisor - cluster migration recommendations")
    parser.add_argument("--vcenter", required=True, help="vCenter hostname or IP address")
    parser.add_argument("--username", required=True, help="vCenter username")
    parser.add_argument("--password", default='', help="vCenter password (will prompt if not provided)")
    parser.add_argument("--config", default='config/drs_advisor.yaml', help="Path to the YAML configuration file")
    parser.add_argument("--cluster", default=None, help="Specific cluster name to analyze (default: all clusters)")
    parser.add_argument("--aggressiveness", type=int, default=None, choices=range(1, 6), help="Aggressiveness level (1-5)")
    parser.add_argument("--bypass-rules", action="store_true", default=None, help="Ignore affinity, anti-affinity and VM-host rules")
    parser.add_argument("--balance", action="store_true", default=None, help="Also equalize powered-on VM count per host")
    parser.add_argument("--export-csv", default=None, help="Write recommendations to this CSV file")
    parser.add_argument("--import-csv", default=None, help="Execute recommendations previously exported to this CSV file")
    parser.add_argument("--execute", action="store_true", help="Apply the recommendations after analysis")
    parser.add_argument("--dry-run", action="store_true", help="Log migrations instead of performing them")
    return parser.parse_args(argv)


def setup_logging(config):
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = config.get_log_file()
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, config.get_log_level(), logging.INFO),
        format='%(asctime)s [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers
    )


def pick(cli_value, config_value):
    return config_value if cli_value is None else cli_value


def main(argv=None):
    args = parse_args(argv)
    config = ConfigLoader(args.config)
    setup_logging(config)
    config.log_config()

    if not args.password:
        args.password = getpass.getpass("vCenter Password: ")

    connection_manager = ConnectionManager(
        args.vcenter, args.username, args.password,
        port=config.get_port(), verify_ssl=config.is_ssl_verified()
    )
    connection_manager.connect()
    try:
        if args.import_csv:
            logger.info(f"[Main] Executing recommendations from '{args.import_csv}'...")
            recommendations = load_recommendations(args.import_csv)
        else:
            cluster_name = pick(args.cluster, config.get_cluster_name())
            logger.info(f"[Main] Targeting {'cluster ' + repr(cluster_name) if cluster_name else 'all clusters'}")
            inventory = ClusterState(connection_manager.service_instance, cluster_name=cluster_name).get_inventory()

            engine = RecommendationEngine(
                inventory,
                aggressiveness=pick(args.aggressiveness, config.get_aggressiveness()),
                bypass_rules=pick(args.bypass_rules, config.is_bypass_rules()),
                balance=pick(args.balance, config.is_balance_enabled()),
                cluster_name=cluster_name,
                service_vm_patterns=config.get_service_vm_patterns()
            )
            recommendations = engine.run()
            log_recommendations(recommendations)

            csv_path = pick(args.export_csv, config.get_csv_path())
            if csv_path:
                export_recommendations(csv_path, recommendations)
            if not args.execute:
                return 0

        scheduler = Scheduler(
            connection_manager,
            dry_run=args.dry_run,
            timeout_seconds=config.get_migration_timeout(),
            max_migrations=config.get_max_migrations()
        )
        results = scheduler.execute_migrations(recommendations)
        return 1 if 'failed' in results.values() else 0
    finally:
        connection_manager.disconnect()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        logger.error("An error occurred: {}".format(e))
        sys.exit(1)
