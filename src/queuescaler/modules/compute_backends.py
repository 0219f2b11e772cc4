"""Compute backend module for start/stop actuation.

This module drives one Start or Stop command onto a cloud control plane:
- ContainerGroupBackend: Azure Container Instances action URLs via ARM
- VmInstanceBackend: Google Compute Engine instances.start/stop

Both share the same capability, ``apply(decision, credential)``, which
returns on success and raises a BackendError subclass otherwise:
- AuthRejectedError: credential refused by the management endpoint
- TransportFailureError: network failure or timeout
- UnexpectedStatusError: any other non-success response

Start on a running unit and Stop on a stopped unit are successes.
Nothing here retries; the next scheduled cycle is the retry.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

import google.auth.exceptions
import requests
from google.api_core import exceptions as gcp_exceptions
from google.cloud import compute_v1

from queuescaler.config import AzureSettings, GcpSettings, ScalerConfig
from queuescaler.exceptions import (
    AuthRejectedError,
    TransportFailureError,
    UnexpectedStatusError,
)
from queuescaler.log_sanitizer import LogSanitizer
from queuescaler.models import Action, BackendKind, Credential, ScalingDecision

logger = logging.getLogger(__name__)


class ComputeBackend(Protocol):
    """Start/Stop capability shared by every backend kind."""

    kind: BackendKind

    def apply(self, decision: ScalingDecision, credential: Credential) -> None: ...


def _require_actionable(decision: ScalingDecision) -> str:
    """Return the verb for a Start/Stop decision; NoOp must never reach a backend."""
    if decision.action == Action.START:
        return "start"
    if decision.action == Action.STOP:
        return "stop"
    raise ValueError(f"Refusing to dispatch {decision.action.value} for {decision.unit}")


class ContainerGroupBackend:
    """Start/stop Azure container groups through the ARM REST API."""

    kind = BackendKind.CONTAINER_GROUP

    def __init__(self, settings: AzureSettings, session: requests.Session, timeout: float = 30.0):
        self.settings = settings
        self.session = session
        self.timeout = timeout

    def action_url(self, unit_name: str, verb: str) -> str:
        """Build the ARM action URL for one container group."""
        return (
            f"{self.settings.management_endpoint.rstrip('/')}"
            f"/subscriptions/{self.settings.subscription_id}"
            f"/resourceGroups/{self.settings.resource_group}"
            f"/providers/Microsoft.ContainerInstance/containerGroups/{unit_name}/{verb}"
        )

    def apply(self, decision: ScalingDecision, credential: Credential) -> None:
        """POST the start/stop action for one container group.

        Args:
            decision: Start or Stop decision for a container group
            credential: Management-scoped bearer credential

        Raises:
            AuthRejectedError: On 401/403
            TransportFailureError: On network failure or timeout
            UnexpectedStatusError: On any other non-2xx status except 409
        """
        verb = _require_actionable(decision)
        unit_name = decision.unit.name
        url = self.action_url(unit_name, verb)
        headers = {"Authorization": f"Bearer {credential.token}"}

        try:
            response = self.session.post(
                url,
                headers=headers,
                params={"api-version": self.settings.api_version},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise TransportFailureError(
                f"Failed to {verb} container group '{unit_name}': {safe_error}"
            ) from e

        status = response.status_code

        if 200 <= status < 300:
            logger.debug(f"Container group {verb} accepted: {unit_name} ({status})")
            return

        if status == 409:
            # Group is already in (or moving to) the requested state
            logger.info(f"Container group '{unit_name}' already in requested state for {verb}")
            return

        body = LogSanitizer.sanitize(response.text[:300])
        if status in (401, 403):
            raise AuthRejectedError(
                f"Management endpoint rejected credential for '{unit_name}' ({status}): {body}"
            )

        raise UnexpectedStatusError(
            f"Failed to {verb} container group '{unit_name}': {status} - {body}",
            status_code=status,
        )


def _default_instances_client(credentials: Any) -> compute_v1.InstancesClient:
    return compute_v1.InstancesClient(credentials=credentials)


class VmInstanceBackend:
    """Start/stop Google Compute Engine instances."""

    kind = BackendKind.VM_INSTANCE

    def __init__(
        self,
        settings: GcpSettings,
        timeout: float = 30.0,
        client_factory: Callable[[Any], Any] | None = None,
    ):
        self.settings = settings
        self.timeout = timeout
        self._client_factory = client_factory or _default_instances_client

    def apply(self, decision: ScalingDecision, credential: Credential) -> None:
        """Issue instances.start/stop and wait for the operation.

        Args:
            decision: Start or Stop decision for a VM instance
            credential: Service-account credential; ``handle`` holds the
                google-auth credentials object

        Raises:
            AuthRejectedError: On Unauthenticated/PermissionDenied
            TransportFailureError: On timeout or unavailable service
            UnexpectedStatusError: On any other API error
        """
        verb = _require_actionable(decision)
        instance = decision.unit.name

        if credential.handle is None:
            raise AuthRejectedError(f"No service account credentials for instance '{instance}'")

        try:
            with self._client_factory(credential.handle) as client:
                call = client.start if verb == "start" else client.stop
                operation = call(
                    project=self.settings.project_id,
                    zone=self.settings.zone,
                    instance=instance,
                    timeout=self.timeout,
                )
                operation.result(timeout=self.timeout)
        except (gcp_exceptions.Unauthenticated, gcp_exceptions.PermissionDenied) as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise AuthRejectedError(
                f"Compute API rejected credential for '{instance}': {safe_error}"
            ) from e
        except gcp_exceptions.Conflict:
            logger.info(f"VM instance '{instance}' already in requested state for {verb}")
            return
        except (
            gcp_exceptions.DeadlineExceeded,
            gcp_exceptions.ServiceUnavailable,
            gcp_exceptions.RetryError,
            google.auth.exceptions.TransportError,
            requests.RequestException,
            TimeoutError,
        ) as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise TransportFailureError(
                f"Failed to {verb} VM instance '{instance}': {safe_error}"
            ) from e
        except gcp_exceptions.GoogleAPICallError as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise UnexpectedStatusError(
                f"Failed to {verb} VM instance '{instance}': {safe_error}",
                status_code=e.code if isinstance(e.code, int) else None,
            ) from e

        logger.debug(f"VM instance {verb} completed: {instance}")


def build_backends(
    config: ScalerConfig, session: requests.Session
) -> dict[BackendKind, ComputeBackend]:
    """Create one backend per kind, sharing the caller's HTTP session."""
    return {
        BackendKind.CONTAINER_GROUP: ContainerGroupBackend(
            config.azure, session, config.http_timeout
        ),
        BackendKind.VM_INSTANCE: VmInstanceBackend(config.gcp, config.http_timeout),
    }
