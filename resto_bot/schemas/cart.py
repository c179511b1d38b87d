"""
Cart Schemas
============

Request and response bodies for ``/cart``. Quantities on add must be >= 1;
a PATCH with quantity 0 or less removes the line.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CartLineOut(BaseModel):
    menu_item_id: int
    name: str
    price: int
    quantity: int
    notes: Optional[str] = None
    subtotal: int


class CartOut(BaseModel):
    items: List[CartLineOut] = []
    total_items: int = 0
    total_amount: int = 0


class CartItemAdd(BaseModel):
    menu_item_id: int
    quantity: int = Field(1, ge=1, le=99)
    notes: Optional[str] = Field(None, max_length=200)


class CartItemUpdate(BaseModel):
    """Either field may be sent; ``quantity`` <= 0 removes the line."""
    quantity: Optional[int] = Field(None, le=99)
    notes: Optional[str] = Field(None, max_length=200)
