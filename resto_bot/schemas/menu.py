"""
Menu Schemas
============

Read-only catalog responses for the customer menu page. Prices are integers
in rupiah; ``price_display`` carries the formatted ``Rp25.000`` string.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class MenuCategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int = 0

    model_config = ConfigDict(from_attributes=True)


class MenuItemOut(BaseModel):
    """A menu item as shown to diners."""
    id: int
    category_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    price: int
    price_display: str = ""
    image_url: Optional[str] = None
    tags: List[str] = []
    is_available: bool = True
    is_recommended: bool = False
    preparation_time: int = 15

    model_config = ConfigDict(from_attributes=True)


class MenuResponse(BaseModel):
    categories: List[MenuCategoryOut]
    items: List[MenuItemOut]


class TableOut(BaseModel):
    id: int
    table_number: int
    capacity: int

    model_config = ConfigDict(from_attributes=True)
