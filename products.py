# products.py
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

import errors
from db import get_db, SessionLocal
from models import Product

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def product_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "manufacturer": p.manufacturer,
        "description": p.description,
        "imageUrl": p.image_url,
        "priceReference": p.price_reference,
        "amazonUrl": p.amazon_url,
        "amazonPrice": p.amazon_price,
        "rakutenUrl": p.rakuten_url,
        "rakutenPrice": p.rakuten_price,
        "yahooUrl": p.yahoo_url,
        "yahooPrice": p.yahoo_price,
    }


def page_bounds(page: int, limit: int, default: int) -> tuple[int, int]:
    page = max(page or 1, 1)
    limit = min(max(limit or default, 1), MAX_LIMIT)
    return page, limit


def search_products(db: Session, search: Optional[str] = None, manufacturer: Optional[str] = None,
                    page: int = 1, limit: int = DEFAULT_LIMIT) -> dict:
    page, limit = page_bounds(page, limit, DEFAULT_LIMIT)
    q = db.query(Product)
    if search:
        q = q.filter(or_(Product.name.ilike(f"%{search}%"), Product.description.ilike(f"%{search}%")))
    if manufacturer:
        q = q.filter(Product.manufacturer == manufacturer)
    total = q.count()
    products = q.order_by(Product.name.asc(), Product.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "products": [product_dict(p) for p in products],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit),
    }


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise errors.NotFound("Product not found.")
    return product


@router.get("/products")
def products_index(search: Optional[str] = None, manufacturer: Optional[str] = None,
                   page: int = 1, limit: int = DEFAULT_LIMIT, db: Session = Depends(get_db)):
    return search_products(db, search=search, manufacturer=manufacturer, page=page, limit=limit)


@router.get("/products/{product_id}")
def product_detail(product_id: int, db: Session = Depends(get_db)):
    return product_dict(get_product(db, product_id))


# --- Демо-каталог (seed) ---
DEMO_PRODUCTS = [
    ("Edamame", "Nichirei", "Salted green soybeans, frozen.", 198),
    ("Karaage", "Ajinomoto", "Japanese fried chicken, ready to heat.", 398),
    ("Gyoza", "Ajinomoto", "Pan-fried pork dumplings.", 298),
    ("Takoyaki", "Nichirei", "Octopus balls with sauce.", 348),
    ("Chahan", "Nichirei", "Pork fried rice.", 328),
    ("Yakisoba", "Maruchan", "Stir-fried noodles with sauce.", 158),
    ("Kaki no Tane", "Kameda", "Rice crackers with peanuts.", 178),
    ("Mochi Ice", "Lotte", "Vanilla ice cream wrapped in mochi.", 138),
    ("Purin", "Glico", "Custard pudding with caramel.", 118),
    ("Oolong Tea", "Suntory", "Bottled oolong tea.", 108),
]


def seed_products(db: Session | None = None) -> int:
    own = db is None
    db = db or SessionLocal()
    try:
        if db.query(Product).count() > 0:
            return 0
        db.add_all([
            Product(name=name, manufacturer=maker, description=desc, price_reference=price)
            for name, maker, desc, price in DEMO_PRODUCTS
        ])
        db.commit()
        logger.info("Seeded %d demo products", len(DEMO_PRODUCTS))
        return len(DEMO_PRODUCTS)
    finally:
        if own:
            db.close()
