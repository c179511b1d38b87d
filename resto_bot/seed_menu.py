"""
Seed demo tables, categories and menu items.

    alembic upgrade head
    python -m resto_bot.seed_menu
"""

from typing import Optional

from sqlalchemy.orm import Session

from .db import SessionLocal
from .models import MenuCategory, MenuItem, RestaurantTable


CATEGORIES = [
    # name, icon, sort_order
    ("Makanan Utama", "🍛", 1),
    ("Camilan", "🍢", 2),
    ("Minuman", "🥤", 3),
    ("Dessert", "🍨", 4),
]

ITEMS = [
    # category, name, description, price, tags, recommended, prep minutes
    ("Makanan Utama", "Nasi Goreng", "Nasi goreng kampung dengan telur mata sapi dan kerupuk",
     25000, ["pedas", "favorit"], True, 15),
    ("Makanan Utama", "Nasi Putih", "Sepiring nasi putih hangat", 6000, ["vegetarian"], False, 2),
    ("Makanan Utama", "Mie Goreng Jawa", "Mie goreng bumbu jawa dengan sayuran dan ayam suwir",
     23000, ["favorit"], False, 15),
    ("Makanan Utama", "Ayam Bakar Madu", "Ayam bakar bumbu madu, lalapan dan sambal terasi",
     35000, ["pedas"], True, 25),
    ("Makanan Utama", "Gado-Gado", "Sayuran rebus, tahu, tempe dan lontong dengan saus kacang",
     20000, ["vegetarian", "sehat"], False, 10),
    ("Camilan", "Sate Ayam", "Sepuluh tusuk sate ayam dengan bumbu kacang", 28000, ["favorit"], True, 20),
    ("Camilan", "Pisang Goreng", "Pisang kepok goreng tepung renyah", 12000, ["vegetarian", "manis"], False, 10),
    ("Minuman", "Es Teh", "Teh melati manis dingin", 8000, ["dingin", "manis"], False, 3),
    ("Minuman", "Jus Jeruk Segar", "Jeruk peras tanpa gula tambahan", 25000, ["dingin", "sehat"], True, 5),
    ("Minuman", "Smoothie Berry", "Campuran stroberi, blueberry dan yogurt", 32000, ["dingin", "sehat"], False, 5),
    ("Minuman", "Kopi Susu Gula Aren", "Espresso, susu segar dan gula aren", 22000, ["kopi", "manis"], False, 5),
    ("Dessert", "Es Campur", "Serutan es dengan buah, cincau dan sirup", 18000, ["dingin", "manis"], False, 7),
    ("Dessert", "Klepon", "Bola ketan isi gula merah dengan kelapa parut", 15000, ["vegetarian", "manis"], False, 5),
]

TABLE_COUNT = 12


def seed_menu(db: Optional[Session] = None) -> bool:
    """
    Insert the demo catalog and tables 1..TABLE_COUNT.

    Returns False without changes when menu items already exist.
    """
    own_session = db is None
    if own_session:
        db = SessionLocal()
    try:
        existing = db.query(MenuItem).count()
        if existing > 0:
            print(f"Menu already has {existing} items. Not seeding again.")
            return False

        categories = {}
        for name, icon, sort_order in CATEGORIES:
            category = MenuCategory(name=name, icon=icon, sort_order=sort_order)
            db.add(category)
            categories[name] = category

        for category, name, description, price, tags, recommended, prep in ITEMS:
            db.add(MenuItem(
                category=categories[category],
                name=name,
                description=description,
                price=price,
                tags=tags,
                is_recommended=recommended,
                preparation_time=prep,
            ))

        for number in range(1, TABLE_COUNT + 1):
            db.add(RestaurantTable(table_number=number, capacity=2 if number <= 4 else 4))

        db.commit()
        print(f"Seeded {len(ITEMS)} menu items, {len(CATEGORIES)} categories and {TABLE_COUNT} tables.")
        return True
    finally:
        if own_session:
            db.close()


def main() -> int:
    seed_menu()
    return 0


if __name__ == "__main__":
    main()
