"""Configuration for queuescaler.

All settings come from environment-style key/value configuration, the
way a function host or container runtime supplies them. Nothing is read
from disk except an optional service-account key file.

Design Philosophy:
- Sensible defaults: thresholds, timeouts and endpoints work out of the box
- Fail safe: a missing required name surfaces as ConfigurationMissingError,
  and the cycle that needed it does nothing
- Secrets stay in the environment: to_dict_masked() is safe for logs

Environment variables:
    SCALER_PRIMARY_QUEUE, SCALER_SECONDARY_QUEUE
    SCALER_SMALL_UNIT, SCALER_MEDIUM_UNIT, SCALER_LARGE_UNIT
    SCALER_SMALL_BACKEND, SCALER_MEDIUM_BACKEND, SCALER_LARGE_BACKEND
    SCALER_PRIMARY_THRESHOLD (default: 32)
    SCALER_RESTART_UNIT
    SCALER_HTTP_TIMEOUT (default: 30.0)
    SCALER_DRY_RUN (default: false)
    AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET
    AZURE_SUBSCRIPTION_ID, AZURE_RESOURCE_GROUP
    AZURE_AUTHORITY_HOST, AZURE_MANAGEMENT_ENDPOINT,
    AZURE_CONTAINERINSTANCE_API_VERSION
    AZURE_STORAGE_CONNECTION_STRING
    GCP_SERVICE_ACCOUNT_JSON or GCP_SERVICE_ACCOUNT_FILE
    GCP_PROJECT, GCP_ZONE
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from queuescaler.exceptions import ConfigurationMissingError
from queuescaler.models import BackendKind, ComputeUnit
from queuescaler.modules.scaling_policy import QueueBinding, TierRule

DEFAULT_PRIMARY_THRESHOLD = 32


def _env(name: str, default: str | None = None) -> str | None:
    """Read an environment variable, treating blank values as unset."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TierConfig:
    """Unit name and backend for one capacity tier (small/medium/large)."""

    unit_name: str | None
    backend: BackendKind

    @property
    def unit(self) -> ComputeUnit | None:
        if not self.unit_name:
            return None
        return ComputeUnit(self.unit_name, self.backend)


@dataclass(frozen=True)
class AzureSettings:
    """Service principal and ARM settings for container group actuation.

    Security: client_secret is never included in to_dict_masked().
    """

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    subscription_id: str | None = None
    resource_group: str | None = None
    authority_host: str = "https://login.microsoftonline.com"
    management_endpoint: str = "https://management.azure.com"
    api_version: str = "2021-09-01"

    @property
    def missing(self) -> list[str]:
        """Names of required settings that are absent."""
        required = {
            "AZURE_TENANT_ID": self.tenant_id,
            "AZURE_CLIENT_ID": self.client_id,
            "AZURE_CLIENT_SECRET": self.client_secret,
            "AZURE_SUBSCRIPTION_ID": self.subscription_id,
            "AZURE_RESOURCE_GROUP": self.resource_group,
        }
        return [name for name, value in required.items() if not value]

    @property
    def token_scope(self) -> str:
        """OAuth2 scope for the management plane."""
        return self.management_endpoint.rstrip("/") + "/.default"


@dataclass(frozen=True)
class GcpSettings:
    """Service-account key and location for VM instance actuation."""

    service_account_info: dict[str, Any] | None = None
    project: str | None = None
    zone: str | None = None

    @property
    def project_id(self) -> str | None:
        """Explicit project, falling back to the key's own project_id."""
        if self.project:
            return self.project
        if self.service_account_info:
            return self.service_account_info.get("project_id")
        return None

    @property
    def missing(self) -> list[str]:
        # An unparseable key counts as present; it fails later as AuthRejected
        missing = [] if self.service_account_info is not None else ["GCP_SERVICE_ACCOUNT_JSON"]
        if not self.project_id:
            missing.append("GCP_PROJECT")
        if not self.zone:
            missing.append("GCP_ZONE")
        return missing


@dataclass(frozen=True)
class ScalerConfig:
    """Complete queuescaler configuration.

    Tier layout: the primary queue drives the small and medium tiers, the
    secondary queue drives the large tier.
    """

    primary_queue: str | None = None
    secondary_queue: str | None = None
    small: TierConfig = field(
        default_factory=lambda: TierConfig(None, BackendKind.CONTAINER_GROUP)
    )
    medium: TierConfig = field(
        default_factory=lambda: TierConfig(None, BackendKind.CONTAINER_GROUP)
    )
    large: TierConfig = field(default_factory=lambda: TierConfig(None, BackendKind.VM_INSTANCE))
    primary_threshold: int = DEFAULT_PRIMARY_THRESHOLD
    restart_unit_name: str | None = None
    http_timeout: float = 30.0
    dry_run: bool = False
    storage_connection_string: str | None = None
    azure: AzureSettings = field(default_factory=AzureSettings)
    gcp: GcpSettings = field(default_factory=GcpSettings)

    def __post_init__(self):
        """Validate numeric settings."""
        if self.primary_threshold < 0:
            raise ValueError("primary_threshold cannot be negative")

        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")

    @classmethod
    def from_environment(cls) -> "ScalerConfig":
        """Load configuration from environment variables.

        Returns:
            ScalerConfig with values from environment or defaults

        Raises:
            ValueError: If a numeric value or backend kind cannot be parsed
        """
        return cls(
            primary_queue=_env("SCALER_PRIMARY_QUEUE"),
            secondary_queue=_env("SCALER_SECONDARY_QUEUE"),
            small=cls._tier_from_environment("SMALL", BackendKind.CONTAINER_GROUP),
            medium=cls._tier_from_environment("MEDIUM", BackendKind.CONTAINER_GROUP),
            large=cls._tier_from_environment("LARGE", BackendKind.VM_INSTANCE),
            primary_threshold=int(
                _env("SCALER_PRIMARY_THRESHOLD", str(DEFAULT_PRIMARY_THRESHOLD))
            ),
            restart_unit_name=_env("SCALER_RESTART_UNIT"),
            http_timeout=float(_env("SCALER_HTTP_TIMEOUT", "30.0")),
            dry_run=_env_bool("SCALER_DRY_RUN"),
            storage_connection_string=_env("AZURE_STORAGE_CONNECTION_STRING"),
            azure=AzureSettings(
                tenant_id=_env("AZURE_TENANT_ID"),
                client_id=_env("AZURE_CLIENT_ID"),
                client_secret=_env("AZURE_CLIENT_SECRET"),
                subscription_id=_env("AZURE_SUBSCRIPTION_ID"),
                resource_group=_env("AZURE_RESOURCE_GROUP"),
                authority_host=_env("AZURE_AUTHORITY_HOST", "https://login.microsoftonline.com"),
                management_endpoint=_env(
                    "AZURE_MANAGEMENT_ENDPOINT", "https://management.azure.com"
                ),
                api_version=_env("AZURE_CONTAINERINSTANCE_API_VERSION", "2021-09-01"),
            ),
            gcp=GcpSettings(
                service_account_info=cls._load_service_account_info(),
                project=_env("GCP_PROJECT"),
                zone=_env("GCP_ZONE"),
            ),
        )

    @staticmethod
    def _tier_from_environment(tier: str, default_backend: BackendKind) -> TierConfig:
        backend = _env(f"SCALER_{tier}_BACKEND", default_backend.value)
        return TierConfig(
            unit_name=_env(f"SCALER_{tier}_UNIT"),
            backend=BackendKind(backend.lower()),
        )

    @staticmethod
    def _load_service_account_info() -> dict[str, Any] | None:
        """Read the service-account key from inline JSON or a key file.

        A key that cannot be parsed is returned as an empty dict so the
        credential provider reports it as AuthRejected rather than the
        whole process failing at import time.
        """
        raw = _env("GCP_SERVICE_ACCOUNT_JSON")
        if raw is None:
            key_file = _env("GCP_SERVICE_ACCOUNT_FILE")
            if key_file is None:
                return None
            try:
                raw = Path(key_file).read_text()
            except OSError:
                return {}

        try:
            info = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return info if isinstance(info, dict) else {}

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def topology(self) -> list[ComputeUnit]:
        """All configured compute units, small to large, without duplicates."""
        units: list[ComputeUnit] = []
        for tier in (self.small, self.medium, self.large):
            unit = tier.unit
            if unit is not None and unit not in units:
                units.append(unit)
        return units

    def backend_kinds(self) -> list[BackendKind]:
        """Distinct backend kinds referenced by the topology."""
        kinds: list[BackendKind] = []
        for unit in self.topology():
            if unit.backend not in kinds:
                kinds.append(unit.backend)
        return kinds

    def queue_bindings(self) -> list[QueueBinding]:
        """Queue to tier bindings, in evaluation order.

        The secondary binding is only present when its queue is configured.
        Callers that need completeness should call require_scaling() first.
        """
        bindings = []
        if self.primary_queue and self.small.unit and self.medium.unit:
            bindings.append(
                QueueBinding(
                    queue_name=self.primary_queue,
                    tiers=(
                        TierRule(unit=self.small.unit, threshold=0),
                        TierRule(unit=self.medium.unit, threshold=self.primary_threshold),
                    ),
                )
            )
        if self.secondary_queue and self.large.unit:
            bindings.append(
                QueueBinding(
                    queue_name=self.secondary_queue,
                    tiers=(TierRule(unit=self.large.unit, threshold=0),),
                )
            )
        return bindings

    # ------------------------------------------------------------------
    # Requirement checks (raise ConfigurationMissingError)
    # ------------------------------------------------------------------

    def require_scaling(self) -> None:
        """Check everything a scaler cycle needs is present.

        Required: primary queue with small and medium unit names. The
        secondary queue is optional, but if named its large unit must be too.
        """
        missing = []
        if not self.primary_queue:
            missing.append("SCALER_PRIMARY_QUEUE")
        if not self.small.unit_name:
            missing.append("SCALER_SMALL_UNIT")
        if not self.medium.unit_name:
            missing.append("SCALER_MEDIUM_UNIT")
        if self.secondary_queue and not self.large.unit_name:
            missing.append("SCALER_LARGE_UNIT")
        if missing:
            raise ConfigurationMissingError(f"Missing required settings: {', '.join(missing)}")
        self.require_backend_settings()

    def require_units(self) -> list[ComputeUnit]:
        """Check at least one unit is configured and return the topology."""
        units = self.topology()
        if not units:
            raise ConfigurationMissingError(
                "No compute units configured "
                "(SCALER_SMALL_UNIT, SCALER_MEDIUM_UNIT, SCALER_LARGE_UNIT)"
            )
        self.require_backend_settings()
        return units

    def restart_unit(self) -> ComputeUnit:
        """Resolve the designated restart unit against the topology.

        Raises:
            ConfigurationMissingError: If unset or not a configured unit
        """
        if not self.restart_unit_name:
            raise ConfigurationMissingError("Missing required settings: SCALER_RESTART_UNIT")

        for unit in self.topology():
            if unit.name == self.restart_unit_name:
                self.require_backend_settings([unit.backend])
                return unit

        raise ConfigurationMissingError(
            f"SCALER_RESTART_UNIT '{self.restart_unit_name}' is not a configured unit"
        )

    def require_backend_settings(self, kinds: list[BackendKind] | None = None) -> None:
        """Check identifiers for every backend kind the topology references."""
        missing: list[str] = []
        for kind in kinds if kinds is not None else self.backend_kinds():
            if kind == BackendKind.CONTAINER_GROUP:
                missing.extend(self.azure.missing)
            elif kind == BackendKind.VM_INSTANCE:
                missing.extend(self.gcp.missing)
        if missing:
            raise ConfigurationMissingError(f"Missing required settings: {', '.join(missing)}")

    def to_dict_masked(self) -> dict[str, Any]:
        """Non-secret view of the configuration, safe for logging."""
        return {
            "primary_queue": self.primary_queue,
            "secondary_queue": self.secondary_queue,
            "units": [str(unit) for unit in self.topology()],
            "primary_threshold": self.primary_threshold,
            "restart_unit": self.restart_unit_name,
            "http_timeout": self.http_timeout,
            "dry_run": self.dry_run,
            "azure_subscription_id": self.azure.subscription_id,
            "azure_resource_group": self.azure.resource_group,
            "gcp_project": self.gcp.project_id,
            "gcp_zone": self.gcp.zone,
        }
