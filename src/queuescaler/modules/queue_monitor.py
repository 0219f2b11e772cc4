"""Queue Depth Monitor Module

Read approximate queue depth for scaling decisions.

The controller only needs ``get_approximate_depth(queue_name)``. The Azure
Storage Queue implementation below is what a deployment normally uses;
StaticQueueDepthOracle serves fixed depths for dry evaluation and tests.

Security Requirements:
- Connection string never logged (sanitized in errors)
- Input validation on queue names
"""

import logging
import re
from typing import Protocol

from azure.core.exceptions import AzureError
from azure.storage.queue import QueueServiceClient

from queuescaler.exceptions import QueueMonitorError
from queuescaler.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

# Azure Storage queue names: 3-63 chars, lowercase letters, digits and single hyphens
QUEUE_NAME_PATTERN = re.compile(r"^[a-z0-9](?!.*--)[a-z0-9-]{1,61}[a-z0-9]$")


class QueueDepthOracle(Protocol):
    """Anything that can report the approximate depth of a named queue."""

    def get_approximate_depth(self, queue_name: str) -> int: ...


class StorageQueueDepthOracle:
    """Approximate message counts from Azure Storage queues."""

    def __init__(self, connection_string: str, timeout: float = 30.0):
        if not connection_string:
            raise ValueError("Storage connection string cannot be empty")

        self._service = QueueServiceClient.from_connection_string(
            connection_string, connection_timeout=timeout, read_timeout=timeout
        )

    def get_approximate_depth(self, queue_name: str) -> int:
        """Get approximate message count for a queue.

        Args:
            queue_name: Storage queue name

        Returns:
            int: Approximate number of visible and invisible messages

        Raises:
            QueueMonitorError: If the queue cannot be read
            ValueError: If queue_name is invalid
        """
        self._validate_queue_name(queue_name)

        try:
            properties = self._service.get_queue_client(queue_name).get_queue_properties()
        except AzureError as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise QueueMonitorError(
                f"Failed to read depth of queue '{queue_name}': {safe_error}"
            ) from e

        depth = properties.approximate_message_count or 0
        return max(int(depth), 0)

    @staticmethod
    def _validate_queue_name(queue_name: str) -> None:
        """Validate storage queue name."""
        if not queue_name:
            raise ValueError("Queue name cannot be empty")

        if not QUEUE_NAME_PATTERN.match(queue_name):
            raise ValueError(f"Invalid queue name: {queue_name}")


class StaticQueueDepthOracle:
    """Fixed depths, keyed by queue name. Unknown queues raise."""

    def __init__(self, depths: dict[str, int]):
        self.depths = dict(depths)

    def get_approximate_depth(self, queue_name: str) -> int:
        try:
            return self.depths[queue_name]
        except KeyError:
            raise QueueMonitorError(f"No depth available for queue '{queue_name}'") from None
