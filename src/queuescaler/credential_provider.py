"""Credential provider for backend authentication.

This module obtains short-lived access credentials for each backend kind:
- container_group: service principal secret exchanged through
  azure-identity's ClientSecretCredential for a management-plane token
- vm_instance: Google service-account key exchanged for an access token
  with the compute scope

One credential is fetched per backend kind per cycle; nothing is cached
here. Any failure (bad secret, network error, malformed response) is
reported as AuthRejectedError.

Security:
- Secrets come from configuration only, never from arguments or logs
- Both exchanges go through the injected HTTP session
- Log sanitization for all error messages
"""

import logging
from datetime import UTC, datetime

import google.auth.exceptions
import requests
from azure.core.exceptions import AzureError
from azure.core.pipeline.transport import RequestsTransport
from azure.identity import ClientSecretCredential
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from queuescaler.config import ScalerConfig
from queuescaler.exceptions import AuthRejectedError
from queuescaler.log_sanitizer import LogSanitizer
from queuescaler.models import BackendKind, Credential

logger = logging.getLogger(__name__)

COMPUTE_SCOPE = "https://www.googleapis.com/auth/compute"


class CredentialProvider:
    """Fetch one credential per backend kind.

    The HTTP session is injected so the owner controls its lifetime and
    tests can substitute a double.
    """

    def __init__(self, config: ScalerConfig, session: requests.Session):
        self.config = config
        self.session = session

    def get_credential(self, backend: BackendKind) -> Credential:
        """Obtain a credential for the given backend kind.

        Args:
            backend: Backend kind to authenticate against

        Returns:
            Credential: Short-lived bearer credential

        Raises:
            AuthRejectedError: If the identity provider rejects the request
        """
        if backend == BackendKind.CONTAINER_GROUP:
            return self._get_azure_credential()
        if backend == BackendKind.VM_INSTANCE:
            return self._get_gcp_credential()
        raise AuthRejectedError(f"Unsupported backend kind: {backend}")

    def _get_azure_credential(self) -> Credential:
        """Client-credentials grant for the management plane."""
        azure = self.config.azure
        transport = RequestsTransport(
            session=self.session,
            session_owner=False,
            connection_timeout=self.config.http_timeout,
            read_timeout=self.config.http_timeout,
        )

        try:
            credential = ClientSecretCredential(
                tenant_id=azure.tenant_id,
                client_id=azure.client_id,
                client_secret=azure.client_secret,
                authority=azure.authority_host,
                transport=transport,
            )
            try:
                access_token = credential.get_token(azure.token_scope)
            finally:
                credential.close()
        except (AzureError, ValueError) as e:
            # ClientAuthenticationError is an AzureError; ValueError covers a malformed tenant id
            safe_error = LogSanitizer.sanitize_exception(e)
            raise AuthRejectedError(f"Management token request failed: {safe_error}") from e

        if not access_token.token:
            raise AuthRejectedError("Management token request returned no token")

        logger.debug("Obtained management token for container groups")
        return Credential(
            backend=BackendKind.CONTAINER_GROUP,
            token=access_token.token,
            expires_on=datetime.fromtimestamp(access_token.expires_on, tz=UTC),
        )

    def _get_gcp_credential(self) -> Credential:
        """Exchange the service-account key for a compute-scoped token."""
        info = self.config.gcp.service_account_info

        try:
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=[COMPUTE_SCOPE]
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise AuthRejectedError(f"Invalid service account key: {safe_error}") from e

        try:
            credentials.refresh(GoogleAuthRequest(session=self.session))
        except google.auth.exceptions.GoogleAuthError as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise AuthRejectedError(f"Service account token exchange failed: {safe_error}") from e

        if not credentials.token:
            raise AuthRejectedError("Service account token exchange returned no token")

        expires_on = credentials.expiry.replace(tzinfo=UTC) if credentials.expiry else None

        logger.debug("Obtained compute token for VM instances")
        return Credential(
            backend=BackendKind.VM_INSTANCE,
            token=credentials.token,
            expires_on=expires_on,
            handle=credentials,
        )
