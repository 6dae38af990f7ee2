"""Janela de entrega por usuário e limites do dia no fuso do usuário."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TZ = "UTC"
MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    """Agora em UTC sem tzinfo (formato gravado no banco)."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_hhmm(value: str) -> int:
    """Converte ``HH:MM`` em minutos desde a meia-noite."""

    try:
        hour_fragment, minute_fragment = value.strip().split(":", 1)
        hour, minute = int(hour_fragment), int(minute_fragment[:2])
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid HH:MM value: {value!r}") from exc
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid HH:MM value: {value!r}")
    return hour * 60 + minute


def resolve_timezone(timezone_name: Optional[str]) -> ZoneInfo:
    name = timezone_name or DEFAULT_TZ
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def local_minute_of_day(moment: datetime, timezone_name: Optional[str]) -> int:
    local = _as_utc(moment).astimezone(resolve_timezone(timezone_name))
    return local.hour * 60 + local.minute


def is_minute_within_window(minute_of_day: int, start: int, end: int) -> bool:
    """Limites inclusivos; se ``start > end`` a janela cruza a meia-noite."""

    if start > end:
        return minute_of_day >= start or minute_of_day <= end
    return start <= minute_of_day <= end


def is_within_window(
    moment: datetime,
    window_start: str,
    window_end: str,
    timezone_name: Optional[str] = None,
) -> bool:
    """Verifica se ``moment`` (UTC) cai na janela preferida do usuário.

    Levanta ``ValueError`` para horário ou fuso inválidos; quem chama decide
    a política de falha.
    """

    start = parse_hhmm(window_start)
    end = parse_hhmm(window_end)
    return is_minute_within_window(
        local_minute_of_day(moment, timezone_name), start, end
    )


def local_day_bounds(
    moment: datetime, timezone_name: Optional[str]
) -> Tuple[datetime, datetime]:
    """Início e fim (UTC, sem tzinfo) do dia local que contém ``moment``."""

    tz = resolve_timezone(timezone_name)
    local_date = _as_utc(moment).astimezone(tz).date()
    start_local = datetime.combine(local_date, time(0, 0), tz)
    end_local = datetime.combine(local_date + timedelta(days=1), time(0, 0), tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


__all__ = [
    "DEFAULT_TZ",
    "is_minute_within_window",
    "is_within_window",
    "local_day_bounds",
    "local_minute_of_day",
    "parse_hhmm",
    "resolve_timezone",
    "utcnow",
]
