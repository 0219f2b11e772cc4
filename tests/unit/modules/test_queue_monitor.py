"""Tests for the queue depth monitor module."""

from unittest.mock import Mock, patch

import pytest
from azure.core.exceptions import ResourceNotFoundError, ServiceRequestError

from queuescaler.exceptions import QueueMonitorError
from queuescaler.modules.queue_monitor import StaticQueueDepthOracle, StorageQueueDepthOracle

CONNECTION_STRING = "DefaultEndpointsProtocol=https;AccountName=acct;AccountKey=c2VjcmV0=="


@pytest.fixture
def mock_service():
    with patch("queuescaler.modules.queue_monitor.QueueServiceClient") as service_cls:
        service = Mock()
        service_cls.from_connection_string.return_value = service
        yield service_cls, service


def set_depth(service, depth):
    service.get_queue_client.return_value.get_queue_properties.return_value = Mock(
        approximate_message_count=depth
    )


class TestStorageQueueDepthOracle:
    """Test depth reads against Azure Storage queues."""

    def test_client_built_with_timeouts(self, mock_service):
        service_cls, _ = mock_service

        StorageQueueDepthOracle(CONNECTION_STRING, timeout=7.0)

        service_cls.from_connection_string.assert_called_once_with(
            CONNECTION_STRING, connection_timeout=7.0, read_timeout=7.0
        )

    def test_empty_connection_string_rejected(self, mock_service):
        with pytest.raises(ValueError, match="connection string"):
            StorageQueueDepthOracle("")

    def test_reads_approximate_count(self, mock_service):
        _, service = mock_service
        set_depth(service, 42)

        depth = StorageQueueDepthOracle(CONNECTION_STRING).get_approximate_depth("jobs")

        assert depth == 42
        service.get_queue_client.assert_called_once_with("jobs")

    def test_missing_count_is_zero(self, mock_service):
        _, service = mock_service
        set_depth(service, None)

        assert StorageQueueDepthOracle(CONNECTION_STRING).get_approximate_depth("jobs") == 0

    def test_negative_count_clamped(self, mock_service):
        _, service = mock_service
        set_depth(service, -5)

        assert StorageQueueDepthOracle(CONNECTION_STRING).get_approximate_depth("jobs") == 0

    @pytest.mark.parametrize(
        "error",
        [
            ResourceNotFoundError("The specified queue does not exist."),
            ServiceRequestError("connection reset"),
        ],
    )
    def test_azure_errors_wrapped(self, mock_service, error):
        _, service = mock_service
        service.get_queue_client.return_value.get_queue_properties.side_effect = error

        with pytest.raises(QueueMonitorError, match="heavy-jobs"):
            StorageQueueDepthOracle(CONNECTION_STRING).get_approximate_depth("heavy-jobs")

    def test_error_does_not_leak_account_key(self, mock_service):
        _, service = mock_service
        service.get_queue_client.return_value.get_queue_properties.side_effect = (
            ServiceRequestError(f"bad request using {CONNECTION_STRING}")
        )

        with pytest.raises(QueueMonitorError) as exc_info:
            StorageQueueDepthOracle(CONNECTION_STRING).get_approximate_depth("jobs")

        assert "c2VjcmV0" not in str(exc_info.value)

    @pytest.mark.parametrize("name", ["", "ab", "Jobs", "jobs--x", "-jobs", "jobs_q"])
    def test_invalid_queue_names(self, mock_service, name):
        _, service = mock_service

        with pytest.raises(ValueError):
            StorageQueueDepthOracle(CONNECTION_STRING).get_approximate_depth(name)

        service.get_queue_client.assert_not_called()


class TestStaticQueueDepthOracle:
    def test_returns_fixed_depth(self):
        assert StaticQueueDepthOracle({"jobs": 7}).get_approximate_depth("jobs") == 7

    def test_unknown_queue_raises(self):
        with pytest.raises(QueueMonitorError, match="other"):
            StaticQueueDepthOracle({"jobs": 7}).get_approximate_depth("other")
