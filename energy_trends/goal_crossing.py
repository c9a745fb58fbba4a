"""
Goal Crossing Module
Detects when the projected end-of-day total moves across the daily goal
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class GoalCrossingDirection(Enum):
    BELOW_TO_ABOVE = "below_to_above"
    ABOVE_TO_BELOW = "above_to_below"


@dataclass(frozen=True)
class GoalCrossingEvent:
    """A projection moving to the other side of the goal"""

    direction: GoalCrossingDirection
    projected_total: float
    goal: float
    detected_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "projected_total": self.projected_total,
            "goal": self.goal,
            "detected_at": self.detected_at.isoformat(),
        }


def detect_crossing(previous: Optional[float], current: float, goal: float,
                    detected_at: Optional[datetime] = None) -> Optional[GoalCrossingEvent]:
    """
    Compare two consecutive projections against the goal

    Rules:
    1. previous < goal <= current is a move above the goal
    2. previous >= goal > current is a move below the goal

    Args:
        previous: Projection from the prior refresh, None on the first refresh of the day
        current: Projection from this refresh
        goal: Daily goal; goals <= 0 never cross
        detected_at: Timestamp for the event (default: now)

    Returns:
        GoalCrossingEvent or None when nothing crossed
    """
    if previous is None or goal <= 0:
        return None

    if previous < goal <= current:
        direction = GoalCrossingDirection.BELOW_TO_ABOVE
    elif previous >= goal > current:
        direction = GoalCrossingDirection.ABOVE_TO_BELOW
    else:
        return None

    return GoalCrossingEvent(
        direction=direction,
        projected_total=current,
        goal=goal,
        detected_at=detected_at or datetime.now(),
    )
