import logging
import ssl

from pyVim.connect import Disconnect, SmartConnect

logger = logging.getLogger('drs_advisor')


class ConnectionManager:
    def __init__(self, vcenter, username, password, port=443, verify_ssl=False):
        self.vcenter = vcenter
        self.username = username
        self.password = password
        self.port = port
        self.verify_ssl = verify_ssl
        self.service_instance = None

    def connect(self):
        """Connect to vCenter; connection errors propagate to the caller."""
        context = None if self.verify_ssl else ssl._create_unverified_context()
        logger.info(f"[ConnectionManager] Connecting to vCenter '{self.vcenter}' as '{self.username}'...")
        self.service_instance = SmartConnect(
            host=self.vcenter,
            user=self.username,
            pwd=self.password,
            port=self.port,
            sslContext=context
        )
        logger.info(f"[ConnectionManager] Connected to '{self.vcenter}'.")
        return self.service_instance

    def disconnect(self):
        if self.service_instance is not None:
            Disconnect(self.service_instance)
            self.service_instance = None
            logger.info(f"[ConnectionManager] Disconnected from '{self.vcenter}'.")
