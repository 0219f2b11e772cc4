"""Pytest configuration for queuescaler tests.

CRITICAL: Tests must never reach a real identity provider, management
endpoint or storage account.
"""

from unittest.mock import patch

import pytest
from requests.adapters import HTTPAdapter


class RealNetworkCallError(AssertionError):
    """A test tried to send a real HTTP request."""


@pytest.fixture(scope="session", autouse=True)
def prevent_real_cloud_operations():
    """Block outbound HTTP for the whole test session.

    Every cloud call in queuescaler goes through requests (directly, via
    google-auth's transport, or via azure-core's pipeline), so refusing at
    the adapter catches anything a test forgot to mock.
    """
    def refuse(adapter, request, *args, **kwargs):
        raise RealNetworkCallError(
            f"Real HTTP call attempted in tests: {request.method} {request.url}"
        )

    with patch.object(HTTPAdapter, "send", refuse):
        yield
