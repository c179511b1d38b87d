"""
Cart Routes
===========

Manual cart edits from the menu page (the assistant edits the same cart
through chat directives). All endpoints require ``X-Session-ID``.

- GET /cart
- POST /cart/items: add quantity of a menu item
- PATCH /cart/items/{menu_item_id}: set quantity (<= 0 removes) and/or notes
- DELETE /cart/items/{menu_item_id}
- DELETE /cart
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import require_session
from ..cart import Cart
from ..db import get_db
from ..errors import NotFoundError
from ..schemas.cart import CartItemAdd, CartItemUpdate, CartLineOut, CartOut
from ..services import cart as cart_service
from ..services.menu import get_menu_item


logger = logging.getLogger(__name__)

cart_router = APIRouter(prefix="/cart", tags=["Cart"])


def cart_out(cart: Cart) -> CartOut:
    return CartOut(
        items=[
            CartLineOut(
                menu_item_id=line.menu_item_id,
                name=line.name,
                price=line.price,
                quantity=line.quantity,
                notes=line.notes,
                subtotal=line.subtotal,
            )
            for line in cart.lines
        ],
        total_items=cart.total_items(),
        total_amount=cart.total_amount(),
    )


@cart_router.get("", response_model=CartOut)
def get_cart(
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> CartOut:
    return cart_out(cart_service.load_cart(db, session_id))


@cart_router.post("/items", response_model=CartOut)
def add_cart_item(
    req: CartItemAdd,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> CartOut:
    item = get_menu_item(db, req.menu_item_id)
    if item is None or not item.is_available:
        raise NotFoundError(f"menu item {req.menu_item_id} unavailable", "Menu tidak tersedia.")

    cart = cart_service.load_cart(db, session_id)
    cart.add_item(item, req.quantity, req.notes)
    cart_service.save_cart(db, session_id, cart)
    return cart_out(cart)


@cart_router.patch("/items/{menu_item_id}", response_model=CartOut)
def update_cart_item(
    menu_item_id: int,
    req: CartItemUpdate,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> CartOut:
    cart = cart_service.load_cart(db, session_id)
    if req.quantity is not None:
        cart.update_quantity(menu_item_id, req.quantity)
    if "notes" in req.model_fields_set:
        cart.update_notes(menu_item_id, req.notes)
    cart_service.save_cart(db, session_id, cart)
    return cart_out(cart)


@cart_router.delete("/items/{menu_item_id}", response_model=CartOut)
def remove_cart_item(
    menu_item_id: int,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> CartOut:
    cart = cart_service.load_cart(db, session_id)
    cart.remove_item(menu_item_id)
    cart_service.save_cart(db, session_id, cart)
    return cart_out(cart)


@cart_router.delete("", response_model=CartOut)
def clear_cart(
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> CartOut:
    cart_service.clear_cart(db, session_id)
    return CartOut()
