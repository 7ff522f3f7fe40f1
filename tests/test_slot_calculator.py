"""
Tests for the slot calculator.
"""
import pytest
from datetime import date, time
from decimal import Decimal

from canchaqr.core.exceptions import SlotValidationError
from canchaqr.services.slot_calculator import calculate_slots, to_money, total_of


class TestCalculateSlots:
    """Pricing and validation of requested hour blocks."""

    def test_two_back_to_back_hours(self):
        """Rate 100 with 08-09 and 09-10 totals 200."""
        result = calculate_slots(100, [
            {"start": "08:00", "end": "09:00"},
            {"start": "09:00", "end": "10:00"},
        ])

        assert result.total_amount == Decimal("200.00")
        assert [s.amount for s in result.slots] == [Decimal("100.00"), Decimal("100.00")]
        assert result.slots[0].start_time == time(8)
        assert result.slots[1].end_time == time(10)

    def test_multi_hour_slot_is_priced_per_hour(self):
        result = calculate_slots("37.50", [{"start": "18:00", "end": "21:00"}])

        assert result.slots[0].hours == 3
        assert result.total_amount == Decimal("112.50")

    def test_slots_are_returned_in_start_order(self):
        result = calculate_slots(10, [
            {"start": "14:00", "end": "15:00"},
            {"start": "08:00", "end": "09:00"},
        ], slot_date=date(2026, 11, 2))

        assert [s.label for s in result.slots] == ["08:00 - 09:00", "14:00 - 15:00"]
        assert all(s.slot_date == date(2026, 11, 2) for s in result.slots)

    def test_accepts_seconds_and_time_objects(self):
        result = calculate_slots(20, [{"start": time(7), "end": "08:00:00"}])
        assert result.total_amount == Decimal("20.00")

    def test_accepts_objects_with_start_end_attributes(self):
        from canchaqr.schemas import SlotRequest

        result = calculate_slots(20, [SlotRequest(start="10:00", end="11:00")])
        assert result.total_amount == Decimal("20.00")

    def test_misaligned_start_rejected(self):
        with pytest.raises(SlotValidationError) as exc_info:
            calculate_slots(100, [{"start": "08:30", "end": "10:00"}])

        assert exc_info.value.code == "INVALID_SLOT"
        assert "Slot 1" in exc_info.value.message
        assert "on the hour" in exc_info.value.message
        assert exc_info.value.details["index"] == 0

    def test_end_not_after_start_rejected(self):
        with pytest.raises(SlotValidationError) as exc_info:
            calculate_slots(100, [
                {"start": "08:00", "end": "09:00"},
                {"start": "11:00", "end": "11:00"},
            ])

        assert "Slot 2" in exc_info.value.message
        assert exc_info.value.details["slot"] == {"start": "11:00", "end": "11:00"}

    def test_overlapping_slots_rejected(self):
        with pytest.raises(SlotValidationError) as exc_info:
            calculate_slots(100, [
                {"start": "08:00", "end": "10:00"},
                {"start": "09:00", "end": "11:00"},
            ])

        assert "overlaps" in exc_info.value.message
        assert exc_info.value.details["index"] == 1

    def test_missing_end_rejected(self):
        with pytest.raises(SlotValidationError) as exc_info:
            calculate_slots(100, [{"start": "08:00"}])

        assert exc_info.value.message == "Slot 1: end time is required"

    def test_garbage_time_rejected(self):
        with pytest.raises(SlotValidationError) as exc_info:
            calculate_slots(100, [{"start": "eight", "end": "09:00"}])

        assert "not a valid HH:MM time" in exc_info.value.message

    def test_empty_list_rejected(self):
        with pytest.raises(SlotValidationError):
            calculate_slots(100, [])

    def test_negative_rate_rejected(self):
        with pytest.raises(SlotValidationError):
            calculate_slots(-1, [{"start": "08:00", "end": "09:00"}])


class TestMoneyHelpers:

    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(3) == Decimal("3.00")

    def test_total_of(self):
        assert total_of([Decimal("100.00"), "50.5", 0]) == Decimal("150.50")
        assert total_of([]) == Decimal("0.00")
