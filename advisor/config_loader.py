import copy
import logging
import os

import yaml

logger = logging.getLogger('drs_advisor')


class ConfigLoader:
    """
    Loads and manages advisor configuration from a YAML file.
    Provides default values if the config file is missing or incomplete.
    """

    DEFAULTS = {
        'analysis': {
            'aggressiveness': 3,
            'bypass_rules': False,
            'balance': False,
            'cluster': '',
            'service_vm_patterns': ['vCLS*']
        },
        'export': {
            'csv_path': ''
        },
        'migration': {
            'timeout_seconds': 300,
            'max_migrations': 0
        },
        'connection': {
            'port': 443,
            'verify_ssl': False
        },
        'logging': {
            'level': 'INFO',
            'file': ''
        }
    }

    def __init__(self, config_file='config/drs_advisor.yaml'):
        """
        Args:
            config_file: Path to YAML config file (relative or absolute)
        """
        self.config_file = config_file
        self.config = self._load_config()

    def _load_config(self):
        if not os.path.exists(self.config_file):
            logger.warning(f"[ConfigLoader] Config file not found at '{self.config_file}'. Using default values.")
            return copy.deepcopy(self.DEFAULTS)

        try:
            with open(self.config_file, 'r') as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.error(f"[ConfigLoader] Error loading config file '{self.config_file}': {e}. Using default values.")
            return copy.deepcopy(self.DEFAULTS)

        if not isinstance(file_config, dict):
            logger.error(f"[ConfigLoader] Config file '{self.config_file}' does not contain a mapping. Using default values.")
            return copy.deepcopy(self.DEFAULTS)

        merged_config = self._deep_merge(self.DEFAULTS, file_config)
        logger.info(f"[ConfigLoader] Configuration loaded from '{self.config_file}'.")
        return merged_config

    @staticmethod
    def _deep_merge(defaults, overrides):
        """Deep merge overrides into a copy of defaults (overrides take precedence)."""
        result = copy.deepcopy(defaults)
        for key, value in overrides.items():
            if isinstance(value, dict) and key in result and isinstance(result[key], dict):
                result[key] = ConfigLoader._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def get(self, *keys, default=None):
        """
        Get a config value by nested keys.
        Example: config.get('analysis', 'aggressiveness')
        """
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                logger.warning(f"[ConfigLoader] Config key not found: {'.'.join(keys)}. Using default: {default}")
                return default
        return value

    def get_aggressiveness(self):
        return int(self.get('analysis', 'aggressiveness', default=self.DEFAULTS['analysis']['aggressiveness']))

    def is_bypass_rules(self):
        return bool(self.get('analysis', 'bypass_rules', default=False))

    def is_balance_enabled(self):
        return bool(self.get('analysis', 'balance', default=False))

    def get_cluster_name(self):
        return self.get('analysis', 'cluster', default='') or None

    def get_service_vm_patterns(self):
        patterns = self.get('analysis', 'service_vm_patterns', default=self.DEFAULTS['analysis']['service_vm_patterns'])
        if isinstance(patterns, str):
            patterns = [patterns]
        return list(patterns or [])

    def get_csv_path(self):
        return self.get('export', 'csv_path', default='') or None

    def get_migration_timeout(self):
        return self.get('migration', 'timeout_seconds', default=self.DEFAULTS['migration']['timeout_seconds'])

    def get_max_migrations(self):
        """0 means no cap."""
        return int(self.get('migration', 'max_migrations', default=0) or 0)

    def get_port(self):
        return int(self.get('connection', 'port', default=self.DEFAULTS['connection']['port']))

    def is_ssl_verified(self):
        return bool(self.get('connection', 'verify_ssl', default=False))

    def get_log_level(self):
        return str(self.get('logging', 'level', default='INFO')).upper()

    def get_log_file(self):
        return self.get('logging', 'file', default='') or None

    def log_config(self):
        logger.info("[ConfigLoader] Current Configuration:")
        logger.info(f"  Aggressiveness: {self.get_aggressiveness()}")
        logger.info(f"  Bypass Rules: {self.is_bypass_rules()}")
        logger.info(f"  Count Balancing: {self.is_balance_enabled()}")
        logger.info(f"  Cluster Filter: {self.get_cluster_name() or 'all clusters'}")
        logger.info(f"  Service VM Patterns: {', '.join(self.get_service_vm_patterns()) or 'none'}")
        logger.info(f"  CSV Export Path: {self.get_csv_path() or 'disabled'}")
        logger.info(f"  Migration Timeout: {self.get_migration_timeout()}s")
        logger.info(f"  Max Migrations: {self.get_max_migrations() or 'unlimited'}")
