"""Scaling Policy Module

Translate queue depth signals into Start/Stop decisions per compute unit.

Each queue is bound to one or more tiers ordered by capacity. A tier is
started when the queue depth exceeds its threshold; tiers are scanned from
the largest down, so once a tier matches every smaller tier is started too.
When no threshold is exceeded every bound tier is stopped.

Pure function of its inputs: no I/O, no clock, no state between calls.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from queuescaler.models import Action, ComputeUnit, QueueSignal, ScalingDecision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierRule:
    """Start ``unit`` when queue depth is strictly greater than ``threshold``."""

    unit: ComputeUnit
    threshold: int = 0

    def __post_init__(self):
        if self.threshold < 0:
            raise ValueError("threshold cannot be negative")


@dataclass(frozen=True)
class QueueBinding:
    """Tiers driven by one queue, smallest capacity first."""

    queue_name: str
    tiers: tuple[TierRule, ...]

    def __post_init__(self):
        if not self.queue_name:
            raise ValueError("queue_name cannot be empty")

        if not self.tiers:
            raise ValueError(f"Queue '{self.queue_name}' must bind at least one tier")

        thresholds = [tier.threshold for tier in self.tiers]
        if thresholds != sorted(thresholds):
            raise ValueError(
                f"Tiers for queue '{self.queue_name}' must be ordered by ascending threshold"
            )


class ScalingPolicy:
    """Evaluate queue bindings against the current signals."""

    def __init__(self, bindings: Sequence[QueueBinding]):
        self.bindings = tuple(bindings)

    def evaluate(
        self, signals: Iterable[QueueSignal], topology: Iterable[ComputeUnit]
    ) -> list[ScalingDecision]:
        """Calculate decisions for one cycle.

        Args:
            signals: Queue depths observed this cycle, in collection order
            topology: Configured compute units

        Returns:
            list[ScalingDecision]: At most one decision per unit

        Bindings are evaluated in order. If two bindings drive the same
        unit, the later binding's decision replaces the earlier one.
        A queue with no signal yields no decisions for its tiers.
        """
        depths: dict[str, int] = {}
        for signal in signals:
            depths[signal.queue_name] = max(signal.approximate_depth, 0)

        configured = set(topology)
        decisions: dict[ComputeUnit, ScalingDecision] = {}

        for binding in self.bindings:
            depth = depths.get(binding.queue_name)
            if depth is None:
                logger.debug(f"No signal for queue '{binding.queue_name}', leaving tiers alone")
                continue

            for decision in self._evaluate_binding(binding, depth):
                if decision.unit not in configured:
                    logger.warning(
                        f"Skipping {decision.unit}: not part of the configured topology"
                    )
                    continue

                previous = decisions.pop(decision.unit, None)
                if previous is not None and previous.action != decision.action:
                    logger.warning(
                        f"{decision.unit} has conflicting decisions: "
                        f"{previous.action.value} replaced by {decision.action.value}"
                    )
                decisions[decision.unit] = decision

        return list(decisions.values())

    @classmethod
    def _evaluate_binding(cls, binding: QueueBinding, depth: int) -> list[ScalingDecision]:
        """Decide every tier of one binding.

        Args:
            binding: Queue binding
            depth: Non-negative queue depth

        Returns:
            list[ScalingDecision]: One decision per tier, largest tier first
        """
        decisions = []
        matched = False

        for tier in reversed(binding.tiers):
            if not matched and depth > tier.threshold:
                matched = True

            if matched:
                reason = f"depth {depth} > {tier.threshold} on '{binding.queue_name}'"
                decisions.append(ScalingDecision(tier.unit, Action.START, reason))
            else:
                reason = f"depth {depth} <= {tier.threshold} on '{binding.queue_name}'"
                decisions.append(ScalingDecision(tier.unit, Action.STOP, reason))

        return decisions
