"""Cálculo determinístico do próximo intervalo de revisão."""

from __future__ import annotations

from enum import Enum

MIN_INTERVAL_MINUTES = 10
DEFAULT_INTERVAL_MINUTES = 1440
TIMEOUT_PENALTY_FACTOR = 0.5


class Difficulty(str, Enum):
    """Avaliação de dificuldade enviada pelo usuário."""

    HARD = "hard"
    NORMAL = "normal"
    GOOD = "good"
    EASY = "easy"


BASE_INTERVAL_MINUTES = {
    Difficulty.HARD: 10,
    Difficulty.NORMAL: 1440,  # 24 horas
    Difficulty.GOOD: 4320,  # 3 dias
    Difficulty.EASY: 10080,  # 1 semana
}


def calculate_interval(difficulty: Difficulty | str, review_count: int) -> int:
    """Retorna o intervalo em minutos: ``max(10, base * max(1, review_count))``."""

    difficulty = Difficulty(difficulty)
    if review_count < 0:
        raise ValueError("review_count must be >= 0")
    multiplier = max(1, review_count)
    return max(MIN_INTERVAL_MINUTES, BASE_INTERVAL_MINUTES[difficulty] * multiplier)


def apply_timeout_penalty(interval_minutes: int) -> int:
    """Intervalo reduzido pela metade para revisões sem resposta (mínimo 10)."""

    return max(MIN_INTERVAL_MINUTES, int(interval_minutes * TIMEOUT_PENALTY_FACTOR))


__all__ = [
    "BASE_INTERVAL_MINUTES",
    "DEFAULT_INTERVAL_MINUTES",
    "Difficulty",
    "MIN_INTERVAL_MINUTES",
    "TIMEOUT_PENALTY_FACTOR",
    "apply_timeout_penalty",
    "calculate_interval",
]
