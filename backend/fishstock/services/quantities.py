# Overview: Pure box/kilogram stock arithmetic shared by the sale engine and the audit executor.

"""
Nothing in this module touches the database. Given a stock position and a
demand it either returns a plan describing the resulting position or raises
InsufficientStockError; callers persist the plan.

Stock units:
- boxes:    whole boxes, each worth `ratio` kilograms
- loose_kg: kilograms already out of a box

A kilogram demand is served from loose stock first. When loose stock runs
short, just enough whole boxes are opened (ceil(shortfall / ratio)) and
whatever the opened boxes hold beyond the shortfall goes back to loose stock.
The box demand is then served from the boxes left over.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP

from ..errors import InsufficientStockError, ValidationError


KG_QUANT = Decimal("0.001")
MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0")


def as_kg(value) -> Decimal:
    return Decimal(str(value)).quantize(KG_QUANT, rounding=ROUND_HALF_UP)


def as_money(value) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class DeductionPlan:
    """Outcome of serving (boxes_requested, kg_requested) from a stock position."""
    boxes_requested: int
    kg_requested: Decimal
    ratio: Decimal
    start_boxes: int
    start_loose_kg: Decimal
    kg_from_loose: Decimal
    boxes_unboxed: int
    kg_from_unboxing: Decimal
    leftover_kg: Decimal
    new_boxes: int
    new_loose_kg: Decimal
    details: list[str] = field(default_factory=list)

    @property
    def boxes_consumed(self) -> int:
        return self.boxes_requested + self.boxes_unboxed

    @property
    def box_delta(self) -> int:
        return self.new_boxes - self.start_boxes

    @property
    def kg_delta(self) -> Decimal:
        return self.new_loose_kg - self.start_loose_kg

    def to_dict(self) -> dict:
        return {
            "deduction_details": list(self.details),
            "final_stock": {"boxes": self.new_boxes, "kg": str(self.new_loose_kg)},
            "unboxing": {
                "boxes_unboxed": self.boxes_unboxed,
                "kg_from_unboxing": str(self.kg_from_unboxing),
                "leftover_kg": str(self.leftover_kg),
            } if self.boxes_unboxed else None,
        }


@dataclass(frozen=True)
class Restoration:
    """Stock position after giving a sale's quantities back to the product."""
    new_boxes: int
    new_loose_kg: Decimal
    box_delta: int
    kg_delta: Decimal
    exact: bool


def _current_stock(boxes: int, loose_kg: Decimal, ratio: Decimal) -> dict:
    return {"boxes": boxes, "kg": loose_kg, "box_to_kg_ratio": ratio}


def check_feasibility(
    *,
    boxes: int,
    loose_kg: Decimal,
    ratio: Decimal,
    boxes_requested: int,
    kg_requested: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    Total kilogram-equivalent check.

    Returns (needed, available); raises InsufficientStockError when the
    product as a whole cannot cover the demand.
    """
    if ratio <= 0:
        raise ValidationError("box_to_kg_ratio must be > 0", {"field": "box_to_kg_ratio"})

    needed = Decimal(boxes_requested) * ratio + kg_requested
    available = loose_kg + Decimal(boxes) * ratio
    if available < needed:
        raise InsufficientStockError(
            f"Insufficient stock: need {_fmt(needed)}kg, have {_fmt(available)}kg available",
            needed=needed,
            available=available,
            current_stock=_current_stock(boxes, loose_kg, ratio),
        )
    return needed, available


def plan_deduction(
    *,
    boxes: int,
    loose_kg,
    ratio,
    boxes_requested: int,
    kg_requested,
) -> DeductionPlan:
    loose_kg = as_kg(loose_kg)
    ratio = Decimal(str(ratio))
    kg_requested = as_kg(kg_requested)

    if boxes_requested < 0 or kg_requested < 0:
        raise ValidationError("Quantities must be non-negative")
    if boxes_requested == 0 and kg_requested == 0:
        raise ValidationError("At least one of boxes or kg must be greater than 0")

    needed, available = check_feasibility(
        boxes=boxes,
        loose_kg=loose_kg,
        ratio=ratio,
        boxes_requested=boxes_requested,
        kg_requested=kg_requested,
    )

    details: list[str] = []
    kg_from_loose = ZERO
    boxes_unboxed = 0
    kg_from_unboxing = ZERO
    leftover_kg = ZERO

    if kg_requested > 0:
        if loose_kg >= kg_requested:
            kg_from_loose = kg_requested
            details.append(f"Used {_fmt(kg_requested)}kg from loose stock")
        else:
            kg_from_loose = loose_kg
            remaining_kg = kg_requested - loose_kg
            boxes_needed = int((remaining_kg / ratio).to_integral_value(rounding=ROUND_CEILING))

            if boxes < boxes_needed:
                raise InsufficientStockError(
                    f"Insufficient stock for kg requirement: need {boxes_needed} box(es) "
                    f"to convert, have {boxes} box(es)",
                    needed=needed,
                    available=available,
                    current_stock=_current_stock(boxes, loose_kg, ratio),
                    extra={
                        "kg_needed": kg_requested,
                        "available_loose_kg": loose_kg,
                        "remaining_kg_needed": remaining_kg,
                        "boxes_needed_for_conversion": boxes_needed,
                        "available_boxes": boxes,
                    },
                )

            if loose_kg > 0:
                details.append(f"Used {_fmt(loose_kg)}kg from loose stock")
            boxes_unboxed = boxes_needed
            kg_from_unboxing = as_kg(Decimal(boxes_needed) * ratio)
            leftover_kg = kg_from_unboxing - remaining_kg
            details.append(f"Unboxed {boxes_unboxed} box(es) to get {_fmt(kg_from_unboxing)}kg")
            details.append(f"Used {_fmt(remaining_kg)}kg from unboxed stock")
            if leftover_kg > 0:
                details.append(f"{_fmt(leftover_kg)}kg remaining from unboxing added to loose stock")

    if boxes_requested > 0:
        remaining_boxes = boxes - boxes_unboxed
        if remaining_boxes < boxes_requested:
            raise InsufficientStockError(
                f"Insufficient box stock: need {boxes_requested} box(es), have "
                f"{remaining_boxes} box(es) remaining after kg conversion",
                needed=needed,
                available=available,
                current_stock=_current_stock(boxes, loose_kg, ratio),
                extra={
                    "boxes_needed": boxes_requested,
                    "boxes_available": remaining_boxes,
                    "boxes_reserved_for_unboxing": boxes_unboxed,
                },
            )
        details.append(f"Used {boxes_requested} box(es) from stock")

    new_boxes = boxes - boxes_unboxed - boxes_requested
    new_loose_kg = as_kg(loose_kg - kg_from_loose + leftover_kg)

    return DeductionPlan(
        boxes_requested=boxes_requested,
        kg_requested=kg_requested,
        ratio=ratio,
        start_boxes=boxes,
        start_loose_kg=loose_kg,
        kg_from_loose=kg_from_loose,
        boxes_unboxed=boxes_unboxed,
        kg_from_unboxing=kg_from_unboxing,
        leftover_kg=as_kg(leftover_kg),
        new_boxes=new_boxes,
        new_loose_kg=new_loose_kg,
        details=details,
    )


def plan_restoration(
    *,
    boxes: int,
    loose_kg,
    stock_box_delta: int,
    stock_kg_delta,
    boxes_sold: int,
    kg_sold,
) -> Restoration:
    """
    Give a sale's stock back.

    The sale's recorded deltas are reversed exactly when that keeps loose
    stock non-negative. When it would not (the leftover kilograms from an
    unboxing have since been sold), the sold quantities are added back as
    boxes_sold boxes plus kg_sold loose kilograms: the same
    kilogram-equivalent, in the units the customer bought.
    """
    loose_kg = as_kg(loose_kg)
    exact_boxes = boxes - stock_box_delta
    exact_loose = loose_kg - as_kg(stock_kg_delta)

    if exact_boxes >= 0 and exact_loose >= 0:
        return Restoration(
            new_boxes=exact_boxes,
            new_loose_kg=exact_loose,
            box_delta=-stock_box_delta,
            kg_delta=-as_kg(stock_kg_delta),
            exact=True,
        )

    kg_sold = as_kg(kg_sold)
    return Restoration(
        new_boxes=boxes + boxes_sold,
        new_loose_kg=loose_kg + kg_sold,
        box_delta=boxes_sold,
        kg_delta=kg_sold,
        exact=False,
    )


def compute_amounts(
    *,
    boxes_sold: int,
    kg_sold,
    box_unit_price,
    kg_unit_price,
    amount_paid,
    payment_status: str,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Return (total_amount, amount_paid, remaining_amount).

    A sale marked paid with no amount recorded is taken as paid in full.
    """
    total = as_money(Decimal(boxes_sold) * Decimal(str(box_unit_price)) + as_kg(kg_sold) * Decimal(str(kg_unit_price)))
    paid = as_money(amount_paid or 0)

    if payment_status == "paid":
        if paid == 0:
            paid = total
        return total, paid, as_money(0)

    if paid > total:
        raise ValidationError(
            "amount_paid cannot exceed total_amount for an unpaid sale",
            {"field": "amount_paid", "total_amount": total, "amount_paid": paid},
        )
    return total, paid, total - paid
