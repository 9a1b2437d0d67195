"""Cart pricing from live product records.

Totals are always derived from ``Product.sell_price`` as read at call time;
nothing stored on a cart entry participates in the computation.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Tuple

TWOPLACES = Decimal("0.01")


def to_money(value) -> Decimal:
    d = Decimal(str(value))
    return d.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a money amount to integer minor units (cents)."""
    cents = (to_money(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    def to_dict(self):
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "line_total": float(self.line_total),
        }


@dataclass(frozen=True)
class CartTotals:
    lines: List[PricedLine] = field(default_factory=list)
    total: Decimal = Decimal("0.00")

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def minor_units(self) -> int:
        return to_minor_units(self.total)

    def to_dict(self):
        return {
            "lines": [line.to_dict() for line in self.lines],
            "item_count": self.item_count,
            "total": float(self.total),
        }


def price_lines(pairs: Iterable[Tuple[object, int]]) -> CartTotals:
    """Price ``(product, quantity)`` pairs using each product's sell price."""
    lines = []
    total = Decimal("0.00")
    for product, quantity in pairs:
        unit_price = to_money(product.sell_price)
        line_total = to_money(unit_price * quantity)
        lines.append(
            PricedLine(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            )
        )
        total += line_total
    return CartTotals(lines=lines, total=to_money(total))
