"""Maintenance sweeps that bypass the scaling policy.

- Auto-heal: stop every configured unit, whatever the queue depth. Units
  can wedge in a crashed-but-billing state; in-flight work is queue based
  and becomes visible again for the next scaler cycle to pick up.
- Restart: stop one designated unit, wait for the stop to be observed,
  then start it again to clear ephemeral state such as local disk.

Both reuse the controller's authenticate and dispatch steps.
"""

import logging

from queuescaler.autoscaling_controller import AutoscalingController, log_report
from queuescaler.exceptions import ConfigurationMissingError
from queuescaler.models import Action, CycleReport, ScalingDecision

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Run auto-heal and restart sweeps."""

    def __init__(self, controller: AutoscalingController):
        self.controller = controller
        self.config = controller.config

    def run_auto_heal_sweep(self) -> CycleReport:
        """Stop every configured unit. Never issues Start."""
        report = CycleReport(cycle="auto_heal", dry_run=self.config.dry_run)

        try:
            units = self.config.require_units()
        except ConfigurationMissingError as e:
            report.skipped_reason = str(e)
            log_report(report)
            return report

        logger.info(f"Auto-heal sweep stopping {len(units)} unit(s)")
        report.decisions = [ScalingDecision(unit, Action.STOP, "auto-heal sweep") for unit in units]

        credentials, auth_failures = self.controller.authenticate(unit.backend for unit in units)
        report.results = self.controller.dispatch(report.decisions, credentials, auth_failures)

        log_report(report)
        return report

    def run_restart_sweep(self) -> CycleReport:
        """Stop then start the designated restart unit.

        Start is only issued after the Stop response has been observed, and
        only if the Stop succeeded. A unit left stopped by a failed sweep is
        picked up again by the scaler cycle.
        """
        report = CycleReport(cycle="restart", dry_run=self.config.dry_run)

        try:
            unit = self.config.restart_unit()
        except ConfigurationMissingError as e:
            report.skipped_reason = str(e)
            log_report(report)
            return report

        logger.info(f"Restart sweep for {unit}")
        stop = ScalingDecision(unit, Action.STOP, "restart sweep")
        start = ScalingDecision(unit, Action.START, "restart sweep")

        credentials, auth_failures = self.controller.authenticate([unit.backend])

        report.decisions.append(stop)
        report.results.extend(self.controller.dispatch([stop], credentials, auth_failures))

        if not report.all_succeeded:
            logger.warning(f"Stop failed for {unit}, not starting it this sweep")
            log_report(report)
            return report

        report.decisions.append(start)
        report.results.extend(self.controller.dispatch([start], credentials, auth_failures))

        log_report(report)
        return report
