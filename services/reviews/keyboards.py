"""Teclado inline de avaliação e parser do ``callback_data``."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from core.scheduling import Difficulty

CALLBACK_PREFIX = "rv"

_CODES = {
    Difficulty.HARD: "h",
    Difficulty.NORMAL: "n",
    Difficulty.GOOD: "g",
    Difficulty.EASY: "e",
}
_BY_CODE = {code: difficulty for difficulty, code in _CODES.items()}

_LABELS = {
    Difficulty.HARD: "😣 Hard",
    Difficulty.NORMAL: "🙂 Normal",
    Difficulty.GOOD: "😀 Good",
    Difficulty.EASY: "😎 Easy",
}


def build_callback_data(token: str, difficulty: Difficulty) -> str:
    return f"{CALLBACK_PREFIX}:{token}:{_CODES[Difficulty(difficulty)]}"


def parse_callback_data(data: Optional[str]) -> Optional[Tuple[str, Difficulty]]:
    """Retorna ``(token, dificuldade)`` ou ``None`` se o callback não é de revisão"""
    if not data:
        return None
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != CALLBACK_PREFIX or not parts[1]:
        return None
    difficulty = _BY_CODE.get(parts[2])
    if difficulty is None:
        return None
    return parts[1], difficulty


def build_rating_keyboard(token: str) -> Dict:
    buttons = [
        {"text": _LABELS[d], "callback_data": build_callback_data(token, d)}
        for d in (Difficulty.HARD, Difficulty.NORMAL, Difficulty.GOOD, Difficulty.EASY)
    ]
    return {"inline_keyboard": [buttons[:2], buttons[2:]]}


__all__ = [
    "CALLBACK_PREFIX",
    "build_callback_data",
    "build_rating_keyboard",
    "parse_callback_data",
]
