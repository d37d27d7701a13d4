#!/usr/bin/env python3
"""
Stabilization window module

Two independently gated channels, scale-up and scale-down. A channel
enters CoolingDown when a scale action in its direction is committed and
returns to Idle once its cooldown elapses. While a channel cools down,
decisions in that direction are suppressed; the opposite direction is
still evaluated immediately.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..models import ScaleDirection, ScalingDecision, StabilizationState
from .logging_config import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChannelState(str, Enum):
    """State of one stabilization channel"""
    IDLE = "idle"
    COOLING_DOWN = "cooling_down"


@dataclass(frozen=True)
class StabilizationVerdict:
    """Whether a decision may be executed, and why"""
    approved: bool
    reason: str
    up_channel: ChannelState
    down_channel: ChannelState


class StabilizationWindow:
    """Vetoes scale actions inside the per-direction cooldown periods"""

    def __init__(self, scale_up_cooldown: float = 60, scale_down_cooldown: float = 300,
                 clock: Callable[[], datetime] = _utcnow):
        """
        Initialize the stabilization window

        Args:
            scale_up_cooldown: Seconds the scale-up channel cools down after a scale-up
            scale_down_cooldown: Seconds the scale-down channel cools down after a scale-down
            clock: Returns the current time
        """
        if scale_up_cooldown < 0 or scale_down_cooldown < 0:
            raise ValueError("cooldowns must be >= 0")
        self.cooldowns = {
            ScaleDirection.UP: timedelta(seconds=scale_up_cooldown),
            ScaleDirection.DOWN: timedelta(seconds=scale_down_cooldown),
        }
        self.clock = clock

    @staticmethod
    def _last_action(state: StabilizationState, direction: ScaleDirection) -> Optional[datetime]:
        if direction == ScaleDirection.UP:
            return state.last_scale_up_at
        if direction == ScaleDirection.DOWN:
            return state.last_scale_down_at
        return None

    def remaining(self, state: StabilizationState, direction: ScaleDirection,
                  now: Optional[datetime] = None) -> timedelta:
        """Remaining cooldown for a direction (zero when the channel is idle)"""
        last = self._last_action(state, direction)
        if last is None:
            return timedelta(0)
        now = now or self.clock()
        left = last + self.cooldowns[direction] - now
        return max(left, timedelta(0))

    def channel_state(self, state: StabilizationState, direction: ScaleDirection,
                      now: Optional[datetime] = None) -> ChannelState:
        if self.remaining(state, direction, now) > timedelta(0):
            return ChannelState.COOLING_DOWN
        return ChannelState.IDLE

    def evaluate(self, decision: ScalingDecision, state: StabilizationState,
                 now: Optional[datetime] = None) -> StabilizationVerdict:
        """
        Approve or suppress a decision

        Decisions with no direction are always approved (nothing to do).
        """
        now = now or self.clock()
        up = self.channel_state(state, ScaleDirection.UP, now)
        down = self.channel_state(state, ScaleDirection.DOWN, now)

        if decision.direction == ScaleDirection.NONE:
            return StabilizationVerdict(True, "no scale action", up, down)

        channel = up if decision.direction == ScaleDirection.UP else down
        if channel == ChannelState.COOLING_DOWN:
            left = self.remaining(state, decision.direction, now).total_seconds()
            reason = (f"scale-{decision.direction.value} to {decision.desired_replicas} suppressed: "
                      f"cooling down for another {left:.0f}s")
            logger.info(f"[{decision.workload_id}] {reason}")
            return StabilizationVerdict(False, reason, up, down)

        return StabilizationVerdict(True, f"scale-{decision.direction.value} channel idle", up, down)

    def commit(self, state: StabilizationState, direction: ScaleDirection,
               at: Optional[datetime] = None) -> StabilizationState:
        """
        Record an executed scale action; call only after the executor succeeded

        Returns:
            The new stabilization state
        """
        at = at or self.clock()
        if direction == ScaleDirection.UP:
            return state.model_copy(update={"last_scale_up_at": at})
        if direction == ScaleDirection.DOWN:
            return state.model_copy(update={"last_scale_down_at": at})
        return state
