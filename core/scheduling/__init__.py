"""Componentes core do agendamento de revisões."""

from .intervals import (
    BASE_INTERVAL_MINUTES,
    DEFAULT_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
    Difficulty,
    apply_timeout_penalty,
    calculate_interval,
)
from .states import (
    IN_FLIGHT_STATES,
    TRANSITIONS,
    DeliveryState,
    can_transition,
    effective_state,
    ensure_transition,
)
from .windows import (
    is_minute_within_window,
    is_within_window,
    local_day_bounds,
    parse_hhmm,
    utcnow,
)

__all__ = [
    "BASE_INTERVAL_MINUTES",
    "DEFAULT_INTERVAL_MINUTES",
    "MIN_INTERVAL_MINUTES",
    "Difficulty",
    "apply_timeout_penalty",
    "calculate_interval",
    "IN_FLIGHT_STATES",
    "TRANSITIONS",
    "DeliveryState",
    "can_transition",
    "effective_state",
    "ensure_transition",
    "is_minute_within_window",
    "is_within_window",
    "local_day_bounds",
    "parse_hhmm",
    "utcnow",
]
