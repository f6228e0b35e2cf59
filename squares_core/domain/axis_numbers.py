"""Random digit permutations that map score digits onto grid rows and columns."""

import random
from typing import Dict, Optional

from squares_core.models.dc_models import Period
from squares_core.models.schema_models import AxisPairSchema, ScoresSchema

# Axis slot -> live period from which it becomes the active axis.
SLOT_TRIGGER_PERIOD = {"q1": 0, "q2": 2, "q3": 3, "q4": 4}

# Slot generated once the keyed period snapshot is final (four-set pools).
SLOT_AFTER_FINAL = {Period.q1: "q2", Period.half: "q3", Period.q3: "q4"}

# Axis slot used to resolve each payout period.
PERIOD_SLOT = {Period.q1: "q1", Period.half: "q2", Period.q3: "q3", Period.final: "q4"}


def shuffled_digits(rng: random.Random) -> list[int]:
    """Fisher-Yates shuffle of 0-9."""
    digits = list(range(10))
    for i in range(len(digits) - 1, 0, -1):
        j = rng.randint(0, i)
        digits[i], digits[j] = digits[j], digits[i]
    return digits


def generate_axis_pair(rng: random.Random) -> AxisPairSchema:
    return AxisPairSchema(home=shuffled_digits(rng), away=shuffled_digits(rng))


def ensure_slot(
    axes: Dict[str, AxisPairSchema], slot: str, rng: random.Random
) -> tuple[Dict[str, AxisPairSchema], bool]:
    """Generate the axis for a slot unless one already exists.

    Returns:
        tuple[Dict[str, AxisPairSchema], bool]: Axes and whether a new pair was made
    """
    if slot in axes:
        return axes, False
    updated = dict(axes)
    updated[slot] = generate_axis_pair(rng)
    return updated, True


def ensure_quarter_axes(
    axes: Dict[str, AxisPairSchema],
    scores: ScoresSchema,
    number_sets: int,
    is_locked: bool,
    rng: random.Random,
) -> tuple[Dict[str, AxisPairSchema], list[str]]:
    """Create the per-quarter axes a four-set pool is due, in slot order.

    Existing slots are never regenerated, so calling this again is a no-op.
    """
    if number_sets != 4 or not is_locked:
        return axes, []
    generated = []
    for period, slot in SLOT_AFTER_FINAL.items():
        if scores.snapshot(period) is None:
            continue
        axes, created = ensure_slot(axes, slot, rng)
        if created:
            generated.append(slot)
    return axes, generated


def active_axis(axes: Dict[str, AxisPairSchema], live_period: int) -> Optional[AxisPairSchema]:
    """Latest generated axis whose trigger period has been reached."""
    chosen = None
    for slot, trigger in SLOT_TRIGGER_PERIOD.items():
        if slot in axes and trigger <= live_period:
            chosen = axes[slot]
    if chosen is None and axes:
        chosen = axes.get("q1") or next(iter(axes.values()))
    return chosen


def axis_for_period(axes: Dict[str, AxisPairSchema], period: Period) -> Optional[AxisPairSchema]:
    """Axis used to resolve a payout period.

    Single-set pools only hold the q1 slot; four-set pools fall back to the
    latest earlier slot when a quarter's axis was never generated.
    """
    slots = list(SLOT_TRIGGER_PERIOD)
    index = slots.index(PERIOD_SLOT[period])
    for slot in reversed(slots[: index + 1]):
        if slot in axes:
            return axes[slot]
    return active_axis(axes, 0)
