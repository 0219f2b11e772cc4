"""Trigger entry points invoked by an external scheduler.

Each trigger is a zero-argument, self-contained invocation: it loads
configuration from the environment, opens one HTTP session, runs, and
closes the session. No exception escapes a trigger; the scheduler's next
tick is the retry.

Reference cadences (six-field cron, seconds first):
    SCALER_SCHEDULE     every minute
    AUTO_HEAL_SCHEDULE  every 12 hours
    RESTART_SCHEDULE    daily at 04:00
"""

import logging
from collections.abc import Callable

import requests

from queuescaler.autoscaling_controller import AutoscalingController
from queuescaler.config import ScalerConfig
from queuescaler.log_sanitizer import LogSanitizer
from queuescaler.maintenance import MaintenanceScheduler
from queuescaler.models import CycleReport

logger = logging.getLogger(__name__)

SCALER_SCHEDULE = "0 */1 * * * *"
AUTO_HEAL_SCHEDULE = "0 0 */12 * * *"
RESTART_SCHEDULE = "0 0 4 * * *"


def build_controller(config: ScalerConfig, session: requests.Session) -> AutoscalingController:
    """Wire a controller with the production collaborators.

    The storage queue client is created by the controller on first use, so
    maintenance sweeps never depend on AZURE_STORAGE_CONNECTION_STRING.
    """
    return AutoscalingController(config, session)


def _invoke(
    name: str,
    run: Callable[[AutoscalingController], CycleReport],
    config: ScalerConfig | None,
) -> CycleReport | None:
    """Run one invocation, containing every failure."""
    logger.info(f"Starting {name}")
    try:
        config = config or ScalerConfig.from_environment()
        with requests.Session() as session:
            return run(build_controller(config, session))
    except Exception as e:
        safe_error = LogSanitizer.create_safe_error_message(e, f"{name} aborted")
        logger.error(safe_error)
        return None


def run_scaler_cycle(config: ScalerConfig | None = None) -> CycleReport | None:
    """Run one autoscaling cycle."""
    return _invoke("scaler cycle", lambda controller: controller.run_cycle(), config)


def run_auto_heal_sweep(config: ScalerConfig | None = None) -> CycleReport | None:
    """Stop every configured unit."""
    return _invoke(
        "auto-heal sweep",
        lambda controller: MaintenanceScheduler(controller).run_auto_heal_sweep(),
        config,
    )


def run_restart_sweep(config: ScalerConfig | None = None) -> CycleReport | None:
    """Stop then start the designated restart unit."""
    return _invoke(
        "restart sweep",
        lambda controller: MaintenanceScheduler(controller).run_restart_sweep(),
        config,
    )


__all__ = [
    "AUTO_HEAL_SCHEDULE",
    "RESTART_SCHEDULE",
    "SCALER_SCHEDULE",
    "build_controller",
    "run_auto_heal_sweep",
    "run_restart_sweep",
    "run_scaler_cycle",
]
