"""
Testes do cálculo de intervalos
"""

import pytest

from core.scheduling import (
    BASE_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
    Difficulty,
    apply_timeout_penalty,
    calculate_interval,
)


class TestCalculateInterval:
    @pytest.mark.parametrize(
        "difficulty,expected",
        [
            (Difficulty.HARD, 10),
            (Difficulty.NORMAL, 1440),
            (Difficulty.GOOD, 4320),
            (Difficulty.EASY, 10080),
        ],
    )
    def test_first_review_uses_base(self, difficulty, expected):
        assert calculate_interval(difficulty, 0) == expected
        assert calculate_interval(difficulty, 1) == expected

    def test_grows_linearly_with_review_count(self):
        assert calculate_interval(Difficulty.NORMAL, 2) == 2880
        assert calculate_interval(Difficulty.GOOD, 3) == 12960
        assert calculate_interval(Difficulty.EASY, 5) == 50400

    def test_accepts_string_difficulty(self):
        assert calculate_interval("good", 1) == 4320

    def test_unknown_difficulty_rejected(self):
        with pytest.raises(ValueError):
            calculate_interval("impossible", 1)

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            calculate_interval(Difficulty.HARD, -1)

    @pytest.mark.parametrize("difficulty", list(Difficulty))
    def test_never_below_minimum_and_monotonic(self, difficulty):
        previous = 0
        for count in range(0, 40):
            interval = calculate_interval(difficulty, count)
            assert interval >= MIN_INTERVAL_MINUTES
            assert interval >= previous
            assert interval == max(
                MIN_INTERVAL_MINUTES, BASE_INTERVAL_MINUTES[difficulty] * max(1, count)
            )
            previous = interval

    def test_deterministic(self):
        assert calculate_interval(Difficulty.GOOD, 7) == calculate_interval(
            Difficulty.GOOD, 7
        )


class TestTimeoutPenalty:
    def test_halves_interval(self):
        assert apply_timeout_penalty(4320) == 2160
        assert apply_timeout_penalty(1440) == 720

    def test_truncates_fraction(self):
        assert apply_timeout_penalty(25) == 12

    def test_floors_at_minimum(self):
        assert apply_timeout_penalty(10) == 10
        assert apply_timeout_penalty(15) == 10
