"""Autoscaling controller: one stateless decision-and-actuation cycle.

Cycle steps:
1. Collect signals   - approximate depth for every bound queue
2. Authenticate      - one credential per backend kind in the topology
3. Evaluate          - run the scaling policy (pure)
4. Dispatch          - apply every non-NoOp decision, concurrently
5. Report            - log outcomes; nothing carries over to the next cycle

Failure isolation:
- Missing configuration skips the whole cycle before any actuation
- A queue that cannot be read yields no decisions for its tiers
- Rejected authentication fails only that backend kind's decisions
- A failed dispatch fails only that unit
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

import requests

from queuescaler.config import ScalerConfig
from queuescaler.credential_provider import CredentialProvider
from queuescaler.exceptions import (
    AuthRejectedError,
    BackendError,
    ConfigurationMissingError,
    QueueMonitorError,
)
from queuescaler.log_sanitizer import LogSanitizer
from queuescaler.models import (
    ActuationResult,
    BackendKind,
    Credential,
    CycleReport,
    QueueSignal,
    ScalingDecision,
)
from queuescaler.modules.compute_backends import ComputeBackend, build_backends
from queuescaler.modules.queue_monitor import QueueDepthOracle, StorageQueueDepthOracle
from queuescaler.modules.scaling_policy import ScalingPolicy

logger = logging.getLogger(__name__)


def log_report(report: CycleReport) -> None:
    """Write the one-line summary for a finished cycle."""
    if report.skipped:
        logger.warning(f"cycle={report.cycle} status=skipped reason={report.skipped_reason}")
        return

    status = "ok" if report.all_succeeded else "partial_failure"
    line = (
        f"cycle={report.cycle} status={status} decisions={len(report.decisions)} "
        f"succeeded={report.succeeded} failed={report.failed}"
    )
    if report.dry_run:
        line += " dry_run=true"
    if report.all_succeeded:
        logger.info(line)
    else:
        logger.error(f"{line} failed_units={','.join(report.get_failed_units())}")


class AutoscalingController:
    """Run scaler cycles against injected collaborators.

    The HTTP session is owned by the caller; the default credential
    provider and backends share it. Any collaborator can be replaced,
    which is how tests and dry evaluation substitute doubles.
    """

    def __init__(
        self,
        config: ScalerConfig,
        session: requests.Session,
        credential_provider: CredentialProvider | None = None,
        backends: Mapping[BackendKind, ComputeBackend] | None = None,
        queue_oracle: QueueDepthOracle | None = None,
        policy: ScalingPolicy | None = None,
    ):
        self.config = config
        self.session = session
        self.credential_provider = credential_provider or CredentialProvider(config, session)
        self.backends = dict(backends) if backends is not None else build_backends(config, session)
        self.queue_oracle = queue_oracle
        self.policy = policy or ScalingPolicy(config.queue_bindings())

    def run_cycle(self) -> CycleReport:
        """Run one scaler cycle.

        Returns:
            CycleReport: Signals, decisions and per-unit results

        Never raises for configuration, queue, auth or backend failures;
        those are reflected in the report and the logs.
        """
        report = CycleReport(cycle="scaler", dry_run=self.config.dry_run)
        logger.debug(f"cycle=scaler config={self.config.to_dict_masked()}")

        try:
            self.config.require_scaling()
            self._ensure_queue_oracle()
        except ConfigurationMissingError as e:
            report.skipped_reason = str(e)
            log_report(report)
            return report

        topology = self.config.topology()

        report.signals = self.collect_signals(
            binding.queue_name for binding in self.policy.bindings
        )

        credentials, auth_failures = self.authenticate(unit.backend for unit in topology)

        report.decisions = self.policy.evaluate(report.signals, topology)
        for decision in report.decisions:
            logger.info(
                f"decision unit={decision.unit.name} backend={decision.unit.backend.value} "
                f"action={decision.action.value} reason=\"{decision.reason}\""
            )

        report.results = self.dispatch(report.decisions, credentials, auth_failures)
        log_report(report)
        return report

    def _ensure_queue_oracle(self) -> None:
        """Build the storage queue oracle on first use.

        Only the scaler cycle reads queues, so a bad connection string
        never blocks a maintenance sweep.

        Raises:
            ConfigurationMissingError: If the connection string is unset or
                cannot be parsed
        """
        if self.queue_oracle is not None:
            return

        connection_string = self.config.storage_connection_string
        if not connection_string:
            raise ConfigurationMissingError(
                "Missing required settings: AZURE_STORAGE_CONNECTION_STRING"
            )

        try:
            self.queue_oracle = StorageQueueDepthOracle(
                connection_string, self.config.http_timeout
            )
        except ValueError as e:
            safe_error = LogSanitizer.sanitize_exception(e)
            raise ConfigurationMissingError(
                f"Malformed setting AZURE_STORAGE_CONNECTION_STRING: {safe_error}"
            ) from e

    def collect_signals(self, queue_names: Iterable[str]) -> list[QueueSignal]:
        """Read the current depth of each queue.

        Queues that cannot be read are logged and left out; the policy
        then issues no decision for their tiers.
        """
        signals = []
        for queue_name in dict.fromkeys(queue_names):
            try:
                depth = self.queue_oracle.get_approximate_depth(queue_name)
            except (QueueMonitorError, ValueError) as e:
                logger.error(f"queue={queue_name} depth=unavailable error=\"{e}\"")
                continue

            signal = QueueSignal(queue_name, depth)
            logger.info(f"queue={signal.queue_name} depth={signal.approximate_depth}")
            signals.append(signal)
        return signals

    def authenticate(
        self, kinds: Iterable[BackendKind]
    ) -> tuple[dict[BackendKind, Credential], dict[BackendKind, str]]:
        """Acquire one credential per distinct backend kind.

        Returns:
            tuple: (credentials by kind, failure message by kind)
        """
        credentials: dict[BackendKind, Credential] = {}
        failures: dict[BackendKind, str] = {}

        for kind in dict.fromkeys(kinds):
            if self.config.dry_run:
                continue
            try:
                credentials[kind] = self.credential_provider.get_credential(kind)
            except AuthRejectedError as e:
                message = LogSanitizer.sanitize_exception(e)
                logger.error(f"auth backend={kind.value} status=rejected error=\"{message}\"")
                failures[kind] = message
                continue

            expires_on = credentials[kind].expires_on
            logger.debug(
                f"auth backend={kind.value} status=ok "
                f"expires_on={expires_on.isoformat() if expires_on else 'unknown'}"
            )

        return credentials, failures

    def dispatch(
        self,
        decisions: Sequence[ScalingDecision],
        credentials: Mapping[BackendKind, Credential],
        auth_failures: Mapping[BackendKind, str] | None = None,
    ) -> list[ActuationResult]:
        """Apply every non-NoOp decision.

        Dispatches are independent and run concurrently, one worker per
        decision. A failure in one never prevents the others.

        Args:
            decisions: Decisions for this cycle
            credentials: Credential per backend kind
            auth_failures: Backend kinds whose authentication failed

        Returns:
            list[ActuationResult]: One result per non-NoOp decision
        """
        auth_failures = auth_failures or {}
        results: list[ActuationResult] = []
        pending: list[tuple[ScalingDecision, Credential]] = []

        for decision in decisions:
            if decision.is_noop:
                continue

            kind = decision.unit.backend
            if self.config.dry_run:
                results.append(self._dry_run_result(decision))
                continue

            if kind in auth_failures or kind not in credentials:
                reason = auth_failures.get(kind, "no credential acquired")
                results.append(
                    self._record(
                        ActuationResult(
                            unit=decision.unit,
                            action=decision.action,
                            success=False,
                            message=f"Skipped, authentication failed: {reason}",
                            error_kind=AuthRejectedError.kind,
                        )
                    )
                )
                continue

            pending.append((decision, credentials[kind]))

        if not pending:
            return results

        with ThreadPoolExecutor(max_workers=len(pending)) as executor:
            future_to_decision = {
                executor.submit(self._apply_one, decision, credential): decision
                for decision, credential in pending
            }

            for future in as_completed(future_to_decision):
                decision = future_to_decision[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    results.append(
                        self._record(
                            ActuationResult(
                                unit=decision.unit,
                                action=decision.action,
                                success=False,
                                message=f"Unexpected error: {LogSanitizer.sanitize_exception(e)}",
                                error_kind="unexpected",
                            )
                        )
                    )

        return results

    def _apply_one(self, decision: ScalingDecision, credential: Credential) -> ActuationResult:
        """Dispatch a single decision to its backend."""
        backend = self.backends[decision.unit.backend]

        try:
            backend.apply(decision, credential)
        except BackendError as e:
            return self._record(
                ActuationResult(
                    unit=decision.unit,
                    action=decision.action,
                    success=False,
                    message=LogSanitizer.sanitize_exception(e),
                    error_kind=e.kind,
                )
            )

        return self._record(
            ActuationResult(
                unit=decision.unit,
                action=decision.action,
                success=True,
                message=f"{decision.action.value} accepted",
            )
        )

    @staticmethod
    def _dry_run_result(decision: ScalingDecision) -> ActuationResult:
        logger.info(f"[DRY RUN] Would {decision.action.value} {decision.unit}")
        return ActuationResult(
            unit=decision.unit,
            action=decision.action,
            success=True,
            message=f"[DRY RUN] {decision.action.value} not issued",
        )

    @staticmethod
    def _record(result: ActuationResult) -> ActuationResult:
        """Log one per-unit outcome and hand it back."""
        line = (
            f"actuation unit={result.unit.name} backend={result.unit.backend.value} "
            f"action={result.action.value}"
        )
        if result.success:
            logger.info(f"{line} status=ok")
        else:
            logger.error(
                f"{line} status=failed error_kind={result.error_kind} "
                f"message=\"{result.message}\""
            )
        return result


__all__ = ["AutoscalingController", "log_report"]
