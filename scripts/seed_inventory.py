"""
Seed demo inventory: catalogue items, ledger products, this month's opening
balance and one day of movements. Safe to run repeatedly.
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from fieldhub.db import Base, SessionLocal, engine
from fieldhub.models.models import InventoryProduct, MaterialService
from fieldhub.services import inventory_ledger as ledger


CATALOGUE = [
    {"item_code": "DH-09", "name": "Điều hòa treo tường 9000BTU", "type": "material", "unit": "bộ", "price": 6900000},
    {"item_code": "DH-12", "name": "Điều hòa treo tường 12000BTU", "type": "material", "unit": "bộ", "price": 8500000},
    {"item_code": "ONG-D6", "name": "Ống đồng phi 6", "type": "material", "unit": "mét", "price": 120000},
    {"item_code": "DV-VS", "name": "Vệ sinh máy lạnh", "type": "service", "unit": "lần", "price": 250000},
    {"item_code": "DV-GAS", "name": "Nạp gas R32", "type": "service", "unit": "lần", "price": 450000},
]

PRODUCTS = [
    # product_code, model_name, unit, opening, in, out
    ("FTKA25", "Daikin FTKA25VAVMV", "bộ", 12, 10, 4),
    ("FTKA35", "Daikin FTKA35VAVMV", "bộ", 6, 5, 2),
    ("CU-XU9", "Panasonic CU/CS-XU9ZKH-8", "bộ", 8, 0, 3),
]


def seed_catalogue(db) -> None:
    for data in CATALOGUE:
        row = db.query(MaterialService).filter(MaterialService.item_code == data["item_code"]).first()
        if row:
            row.name = data["name"]
            row.type = data["type"]
            row.unit = data["unit"]
            row.price = data["price"]
            print(f"Updated catalogue item: {data['item_code']}")
        else:
            db.add(MaterialService(**data))
            print(f"Created catalogue item: {data['item_code']}")


def seed_products(db) -> None:
    today = ledger.local_today()
    for code, model_name, unit, opening, qty_in, qty_out in PRODUCTS:
        product = db.query(InventoryProduct).filter(InventoryProduct.product_code == code).first()
        if product is None:
            product = InventoryProduct(product_code=code, model_name=model_name, unit=unit)
            db.add(product)
            db.flush()
            print(f"Created product: {code}")
        ledger.ensure_month_opening(db, product.product_id, today.year, today.month, opening)
        if not ledger.list_movements(db, product.product_id, today.year, today.month):
            ledger.post_movement(
                db, product.product_id, today.year, today.month, today.day, qty_in, qty_out, note="Seed data"
            )
        stock = ledger.current_stock(db, product.product_id, today.year, today.month)
        print(f"  {code}: stock {stock} for {today.month:02d}/{today.year}")


def seed_inventory():
    """Seed catalogue and ledger products"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_catalogue(db)
        db.flush()
        seed_products(db)
        db.commit()
        print("\nSuccessfully seeded inventory!")
    except Exception as e:
        db.rollback()
        print(f"Error seeding inventory: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_inventory()
