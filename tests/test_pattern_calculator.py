"""Tests for the PatternCalculator: parity mapping, validation and colors."""

from __future__ import annotations

import pytest

from stunt_sync.core.pattern_calculator import (
    DEFAULT_EVEN_COLOR,
    DEFAULT_ODD_COLOR,
    PatternCalculator,
    phase_lights_seat,
)
from stunt_sync.domain.enums import Phase
from stunt_sync.domain.errors import (
    InvalidColorError,
    InvalidDutyCycleError,
    InvalidFrequencyError,
)
from stunt_sync.domain.seat import Seat


@pytest.fixture
def calc() -> PatternCalculator:
    return PatternCalculator()


class TestCalculate:
    def test_even_seat_lights_first_phase(self, calc: PatternCalculator) -> None:
        pattern = calc.calculate(seat_is_even=True)
        assert pattern.frequency == 2
        assert pattern.duty_cycle == 0.5
        assert pattern.should_flash_in_even_phase is True

    def test_odd_seat_lights_second_phase(self, calc: PatternCalculator) -> None:
        pattern = calc.calculate(seat_is_even=False, frequency=4)
        assert pattern.should_flash_in_even_phase is False
        assert pattern.frequency == 4

    def test_for_seat_uses_seat_number_parity(self, calc: PatternCalculator) -> None:
        assert calc.calculate_for_seat(Seat(section="A", row=5, number=12)).is_even_seat
        assert not calc.calculate_for_seat(Seat(section="A", row=6, number=11)).is_even_seat

    def test_duty_cycle_override(self, calc: PatternCalculator) -> None:
        assert calc.calculate(True, 2, duty_cycle=0.3).duty_cycle == 0.3

    def test_constructor_duty_cycle_is_default(self) -> None:
        assert PatternCalculator(duty_cycle=0.7).calculate(True).duty_cycle == 0.7

    @pytest.mark.parametrize("frequency", [0, 11, -1])
    def test_frequency_out_of_range(self, calc: PatternCalculator, frequency: int) -> None:
        with pytest.raises(InvalidFrequencyError) as exc_info:
            calc.calculate(True, frequency)
        assert str(exc_info.value) == f"Invalid frequency {frequency}. Must be between 1-10 Hz"

    @pytest.mark.parametrize("duty", [0.05, 0.95])
    def test_duty_cycle_out_of_range(self, calc: PatternCalculator, duty: float) -> None:
        with pytest.raises(InvalidDutyCycleError):
            calc.calculate(True, 2, duty_cycle=duty)

    def test_boundaries_accepted(self, calc: PatternCalculator) -> None:
        calc.calculate(True, 1, duty_cycle=0.1)
        calc.calculate(False, 10, duty_cycle=0.9)


class TestPhases:
    @pytest.mark.parametrize(
        "phase,even,expected",
        [
            (Phase.EVEN_ON_ODD_OFF, True, True),
            (Phase.EVEN_ON_ODD_OFF, False, False),
            (Phase.EVEN_OFF_ODD_ON, True, False),
            (Phase.EVEN_OFF_ODD_ON, False, True),
            (Phase.STOPPED, True, False),
            (Phase.STOPPED, False, False),
        ],
    )
    def test_phase_membership(self, phase: Phase, even: bool, expected: bool) -> None:
        assert phase_lights_seat(phase, even) is expected

    def test_exactly_one_parity_lit_while_running(self) -> None:
        for phase in (Phase.EVEN_ON_ODD_OFF, Phase.EVEN_OFF_ODD_ON):
            assert phase_lights_seat(phase, True) != phase_lights_seat(phase, False)

    def test_should_flash_at_phase(self, calc: PatternCalculator) -> None:
        pattern = calc.calculate(False)
        assert calc.should_flash_at_phase(pattern, Phase.EVEN_OFF_ODD_ON)
        assert not calc.should_flash_at_phase(pattern, Phase.EVEN_ON_ODD_OFF)


class TestDescribe:
    def test_even(self, calc: PatternCalculator) -> None:
        text = calc.describe(calc.calculate(True, 2))
        assert text == "Even seat: Flash during first phase at 2Hz"

    def test_odd(self, calc: PatternCalculator) -> None:
        text = calc.describe(calc.calculate(False, 5))
        assert "Odd" in text
        assert "second phase" in text
        assert "5Hz" in text


class TestColors:
    def test_parity_defaults(self, calc: PatternCalculator) -> None:
        assert calc.color_for(True) == DEFAULT_EVEN_COLOR
        assert calc.color_for(False) == DEFAULT_ODD_COLOR

    def test_custom_palette(self) -> None:
        calc = PatternCalculator(even_color="#00FF00", odd_color="#FFFF00")
        assert calc.color_for(True) == "#00FF00"
        assert calc.color_for(False) == "#FFFF00"

    def test_invalid_palette_falls_back(self) -> None:
        calc = PatternCalculator(even_color="green", odd_color="")
        assert calc.color_for(True) == DEFAULT_EVEN_COLOR
        assert calc.color_for(False) == DEFAULT_ODD_COLOR

    @pytest.mark.parametrize("color", ["#00ff00", "#8000FF00"])
    def test_valid_colors(self, calc: PatternCalculator, color: str) -> None:
        assert calc.is_valid_color(color)
        assert calc.validate_color(color) == color.upper()

    @pytest.mark.parametrize("color", ["", "00FF00", "#0F0", "#GGGGGG", "#00FF00F"])
    def test_invalid_colors(self, calc: PatternCalculator, color: str) -> None:
        assert not calc.is_valid_color(color)
        with pytest.raises(InvalidColorError):
            calc.validate_color(color)

    def test_override_wins(self, calc: PatternCalculator) -> None:
        assert calc.resolve_color(True, "#abcdef") == "#ABCDEF"

    def test_invalid_override_falls_back(self, calc: PatternCalculator) -> None:
        assert calc.resolve_color(False, "not-a-color") == DEFAULT_ODD_COLOR
        assert calc.resolve_color(True, None) == DEFAULT_EVEN_COLOR
