"""
Slot Calculator

Turns requested hour blocks plus a court's hourly rate into validated slots
and a total amount. Pure functions, no database access.

Rules:
- start and end are on exact hour boundaries (HH:00)
- end > start
- slots of one reservation never overlap
- amount = hourly_rate x hours, quantized to cents
"""
from dataclasses import dataclass, field
from datetime import date, time, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Optional, Union

from canchaqr.core.exceptions import SlotValidationError

CENTS = Decimal("0.01")

TimeLike = Union[str, time]


@dataclass(frozen=True)
class CalculatedSlot:
    start_time: time
    end_time: time
    hours: int
    amount: Decimal
    slot_date: Optional[date] = None

    @property
    def label(self) -> str:
        return f"{self.start_time.strftime('%H:%M')} - {self.end_time.strftime('%H:%M')}"


@dataclass
class SlotCalculation:
    slots: List[CalculatedSlot] = field(default_factory=list)
    total_amount: Decimal = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a number to a 2-decimal Decimal."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_hour(value: Optional[TimeLike], index: int, slot: Mapping[str, Any], label: str) -> time:
    """Parse HH:MM[:SS] (or a time) and require it to sit on the hour."""
    if value is None or value == "":
        raise SlotValidationError(
            f"Slot {index + 1}: {label} time is required",
            index=index,
            slot=_describe(slot),
        )

    if isinstance(value, time):
        parsed = value
    else:
        parsed = None
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                parsed = datetime.strptime(str(value).strip(), fmt).time()
                break
            except ValueError:
                continue
        if parsed is None:
            raise SlotValidationError(
                f"Slot {index + 1}: {label} time '{value}' is not a valid HH:MM time",
                index=index,
                slot=_describe(slot),
            )

    if parsed.minute or parsed.second or parsed.microsecond:
        raise SlotValidationError(
            f"Slot {index + 1}: {label} time '{parsed.strftime('%H:%M')}' must be on the hour (HH:00)",
            index=index,
            slot=_describe(slot),
        )
    return parsed


def calculate_slots(
    hourly_rate: Any,
    slots: Iterable[Any],
    slot_date: Optional[date] = None,
) -> SlotCalculation:
    """
    Validate requested slots and price them.

    Args:
        hourly_rate: Court price per hour
        slots: Sequence of {"start": ..., "end": ...} mappings (or objects
            with start/end attributes)
        slot_date: Calendar date shared by every slot

    Returns:
        SlotCalculation ordered by start time

    Raises:
        SlotValidationError: naming the offending slot
    """
    rate = to_money(hourly_rate)
    if rate < 0:
        raise SlotValidationError("Hourly rate cannot be negative", details={"hourly_rate": str(rate)})

    requested = [_as_mapping(slot) for slot in slots]
    if not requested:
        raise SlotValidationError("At least one slot is required")

    calculated = []
    for index, slot in enumerate(requested):
        start = parse_hour(slot.get("start"), index, slot, "start")
        end = parse_hour(slot.get("end"), index, slot, "end")

        hours = end.hour - start.hour
        if hours <= 0:
            raise SlotValidationError(
                f"Slot {index + 1}: end time {end.strftime('%H:%M')} must be after "
                f"start time {start.strftime('%H:%M')}",
                index=index,
                slot=_describe(slot),
            )

        calculated.append((index, CalculatedSlot(
            start_time=start,
            end_time=end,
            hours=hours,
            amount=to_money(rate * hours),
            slot_date=slot_date,
        )))

    calculated.sort(key=lambda item: item[1].start_time)
    for (_, previous), (index, current) in zip(calculated, calculated[1:]):
        if current.start_time < previous.end_time:
            raise SlotValidationError(
                f"Slot {index + 1}: {current.label} overlaps {previous.label}",
                index=index,
                slot=_describe(requested[index]),
            )

    ordered = [slot for _, slot in calculated]
    return SlotCalculation(slots=ordered, total_amount=total_of(s.amount for s in ordered))


def total_of(amounts: Iterable[Any]) -> Decimal:
    """Sum stored slot amounts."""
    return to_money(sum((Decimal(str(a)) for a in amounts), Decimal("0")))


def _as_mapping(slot: Any) -> Mapping[str, Any]:
    if isinstance(slot, Mapping):
        return slot
    return {"start": getattr(slot, "start", None), "end": getattr(slot, "end", None)}


def _describe(slot: Mapping[str, Any]) -> dict:
    return {key: str(slot.get(key)) if slot.get(key) is not None else None for key in ("start", "end")}
