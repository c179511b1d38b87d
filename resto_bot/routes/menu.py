"""
Menu Routes
===========

Public, read-only catalog endpoints:

- GET /menu: active categories and available items
- GET /menu/recommended: recommended items
- GET /menu/tables/{table_number}: check a scanned table exists
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..currency import format_rupiah
from ..db import get_db
from ..errors import NotFoundError
from ..models import MenuItem
from ..schemas.menu import MenuCategoryOut, MenuItemOut, MenuResponse, TableOut
from ..services import menu as menu_service


logger = logging.getLogger(__name__)

menu_router = APIRouter(prefix="/menu", tags=["Menu"])


def _item_out(item: MenuItem) -> MenuItemOut:
    out = MenuItemOut.model_validate(item)
    out.price_display = format_rupiah(item.price)
    return out


@menu_router.get("", response_model=MenuResponse)
def get_menu(
    category_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
) -> MenuResponse:
    categories = menu_service.get_categories(db)
    items = menu_service.get_available_menu_items(db, category_id=category_id)
    return MenuResponse(
        categories=[MenuCategoryOut.model_validate(c) for c in categories],
        items=[_item_out(i) for i in items],
    )


@menu_router.get("/recommended", response_model=List[MenuItemOut])
def get_recommended(
    limit: int = Query(6, ge=1, le=50),
    db: Session = Depends(get_db),
) -> List[MenuItemOut]:
    return [_item_out(i) for i in menu_service.get_recommended_items(db, limit=limit)]


@menu_router.get("/tables/{table_number}", response_model=TableOut)
def get_table(table_number: int, db: Session = Depends(get_db)) -> TableOut:
    table = menu_service.get_table_by_number(db, table_number)
    if table is None:
        raise NotFoundError(f"table {table_number} not found", "Meja tidak ditemukan.")
    return TableOut.model_validate(table)
