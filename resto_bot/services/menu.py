"""
Menu catalog reads.

The catalog is owned by the admin side; everything here is read-only.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..currency import format_rupiah
from ..models import MenuCategory, MenuItem, RestaurantTable


logger = logging.getLogger(__name__)


def get_available_menu_items(db: Session, category_id: Optional[int] = None) -> List[MenuItem]:
    """Available items, recommended first, then by category and name."""
    query = db.query(MenuItem).filter(MenuItem.is_available.is_(True))
    if category_id is not None:
        query = query.filter(MenuItem.category_id == category_id)
    return query.order_by(
        MenuItem.is_recommended.desc(),
        MenuItem.category_id,
        MenuItem.name,
        MenuItem.id,
    ).all()


def get_categories(db: Session) -> List[MenuCategory]:
    return (
        db.query(MenuCategory)
        .filter(MenuCategory.is_active.is_(True))
        .order_by(MenuCategory.sort_order, MenuCategory.id)
        .all()
    )


def get_recommended_items(db: Session, limit: int = 6) -> List[MenuItem]:
    return (
        db.query(MenuItem)
        .filter(MenuItem.is_available.is_(True), MenuItem.is_recommended.is_(True))
        .order_by(MenuItem.name, MenuItem.id)
        .limit(limit)
        .all()
    )


def get_menu_item(db: Session, menu_item_id: int) -> Optional[MenuItem]:
    return db.get(MenuItem, menu_item_id)


def get_table_by_number(db: Session, table_number: int) -> Optional[RestaurantTable]:
    """Return the active table with this number, or None."""
    return (
        db.query(RestaurantTable)
        .filter(
            RestaurantTable.table_number == table_number,
            RestaurantTable.is_active.is_(True),
        )
        .first()
    )


def build_menu_snapshot(items: Sequence[MenuItem]) -> List[Dict[str, Any]]:
    """
    Build the menu list sent to the model for one chat turn.

    Only fields the assistant needs to recommend and name items are kept;
    item names here are what directives resolve against.
    """
    snapshot = []
    for item in items:
        snapshot.append({
            "name": item.name,
            "description": item.description or "",
            "price": format_rupiah(item.price),
            "category": item.category.name if item.category else None,
            "tags": list(item.tags or []),
            "recommended": bool(item.is_recommended),
            "preparation_time": item.preparation_time,
        })
    return snapshot
