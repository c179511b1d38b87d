"""
Cart state for one table session.

The cart is a pure state machine with no I/O: one line per menu item id,
quantities always >= 1. Persistence lives in ``services/cart.py``.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .errors import ValidationError


@dataclass
class CartLine:
    """One menu item in the cart, with the name and price seen when added."""
    menu_item_id: int
    name: str
    price: int
    quantity: int
    notes: Optional[str] = None

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


class Cart:
    """
    Client-held collection of (menu item, quantity, notes) keyed by item id.

    ``item`` arguments can be a ``MenuItem`` row or anything exposing
    ``id``, ``name`` and ``price``.
    """

    def __init__(self, lines: Optional[List[CartLine]] = None):
        self._lines: Dict[int, CartLine] = {}
        for line in lines or []:
            self._lines[line.menu_item_id] = line

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def get_line(self, menu_item_id: int) -> Optional[CartLine]:
        return self._lines.get(menu_item_id)

    def add_item(self, item: Any, quantity: int = 1, notes: Optional[str] = None) -> CartLine:
        """
        Add ``quantity`` of ``item``.

        An existing line is incremented and keeps its notes; a new line
        takes the given notes.
        """
        if quantity < 1:
            raise ValidationError(
                f"quantity must be >= 1, got {quantity}",
                "Jumlah pesanan minimal 1.",
            )

        existing = self._lines.get(item.id)
        if existing:
            existing.quantity += quantity
            return existing

        line = CartLine(
            menu_item_id=item.id,
            name=item.name,
            price=item.price,
            quantity=quantity,
            notes=notes or None,
        )
        self._lines[item.id] = line
        return line

    def remove_item(self, menu_item_id: int) -> None:
        self._lines.pop(menu_item_id, None)

    def update_quantity(self, menu_item_id: int, quantity: int) -> None:
        """Set the quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(menu_item_id)
            return

        line = self._lines.get(menu_item_id)
        if line:
            line.quantity = quantity

    def update_notes(self, menu_item_id: int, notes: Optional[str]) -> None:
        line = self._lines.get(menu_item_id)
        if line:
            line.notes = notes or None

    def clear(self) -> None:
        self._lines.clear()

    def total_amount(self) -> int:
        return sum(line.price * line.quantity for line in self._lines.values())

    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_list(self) -> List[Dict[str, Any]]:
        return [asdict(line) for line in self._lines.values()]

    @classmethod
    def from_list(cls, data: Optional[List[Dict[str, Any]]]) -> "Cart":
        lines = []
        for raw in data or []:
            quantity = int(raw.get("quantity") or 0)
            if quantity < 1:
                continue
            lines.append(CartLine(
                menu_item_id=int(raw["menu_item_id"]),
                name=raw.get("name", ""),
                price=int(raw.get("price") or 0),
                quantity=quantity,
                notes=raw.get("notes"),
            ))
        return cls(lines)

    def snapshot(self) -> Dict[str, Any]:
        """Cart summary used by API responses and the model prompt."""
        return {
            "items": self.to_list(),
            "total_items": self.total_items(),
            "total_amount": self.total_amount(),
        }
