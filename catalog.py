import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from errors import NotFoundError
from models import CartItem, JewelryImage, JewelryItem
from schemas import JewelryItemIn

logger = logging.getLogger(__name__)


def list_items(db: Session, category: Optional[str] = None, collection: Optional[str] = None) -> List[JewelryItem]:
    stmt = select(JewelryItem).order_by(JewelryItem.id)
    if category:
        stmt = stmt.where(JewelryItem.category == category)
    if collection:
        stmt = stmt.where(JewelryItem.collection == collection)
    return list(db.scalars(stmt))


def get_item(db: Session, item_id: int) -> JewelryItem:
    item = db.scalar(
        select(JewelryItem)
        .options(selectinload(JewelryItem.gallery_images))
        .where(JewelryItem.id == item_id)
    )
    if item is None:
        raise NotFoundError(f"Jewelry item {item_id} not found")
    return item


def list_categories(db: Session) -> List[str]:
    stmt = (
        select(JewelryItem.category)
        .where(JewelryItem.category.is_not(None), JewelryItem.category != "")
        .distinct()
        .order_by(JewelryItem.category)
    )
    return list(db.scalars(stmt))


def list_collections(db: Session) -> List[str]:
    stmt = (
        select(JewelryItem.collection)
        .where(JewelryItem.collection.is_not(None), JewelryItem.collection != "")
        .distinct()
        .order_by(JewelryItem.collection)
    )
    return list(db.scalars(stmt))


def _gallery(payload: JewelryItemIn) -> List[JewelryImage]:
    return [JewelryImage(url=g.url, sort_order=g.sort_order) for g in payload.gallery_images]


def add_item(db: Session, payload: JewelryItemIn) -> JewelryItem:
    item = JewelryItem(**payload.model_dump(exclude={"gallery_images"}))
    item.gallery_images = _gallery(payload)
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Added jewelry item {item.id} ({item.name})")
    return item


def update_item(db: Session, item_id: int, payload: JewelryItemIn) -> JewelryItem:
    """Overwrite every scalar field and replace the whole gallery."""
    item = get_item(db, item_id)
    for field, value in payload.model_dump(exclude={"gallery_images"}).items():
        setattr(item, field, value)
    # delete-orphan removes the previous images on flush
    item.gallery_images = _gallery(payload)
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, item_id: int) -> None:
    item = db.get(JewelryItem, item_id)
    if item is None:
        raise NotFoundError(f"Jewelry item {item_id} not found")
    db.execute(delete(CartItem).where(CartItem.jewelry_item_id == item_id))
    db.delete(item)
    db.commit()
    logger.info(f"Deleted jewelry item {item_id}")


SAMPLE_ITEMS = [
    {
        "name": "Silver Crescent Necklace",
        "description": "Hand-forged sterling silver crescent on a fine cable chain.",
        "category": "Necklaces",
        "collection": "Moonlight",
        "color": "Silver",
        "size_cm": "45",
        "price": Decimal("89.00"),
        "shipping_price": Decimal("6.00"),
        "stock_quantity": 12,
        "main_image_url": "https://images.unsplash.com/photo-1599643478518-a784e5dc4c8f?q=80&w=1200&auto=format&fit=crop",
    },
    {
        "name": "Gold Leaf Earrings",
        "description": "Gold-plated brass leaves with hypoallergenic hooks.",
        "category": "Earrings",
        "collection": "Autumn",
        "color": "Gold",
        "size_cm": "3.5",
        "price": Decimal("54.50"),
        "shipping_price": Decimal("4.00"),
        "stock_quantity": 30,
        "main_image_url": "https://images.unsplash.com/photo-1535632066927-ab7c9ab60908?q=80&w=1200&auto=format&fit=crop",
    },
    {
        "name": "Braided Copper Bracelet",
        "description": "Three-strand braided copper cuff, adjustable.",
        "category": "Bracelets",
        "collection": None,
        "color": "Copper",
        "size_cm": "18",
        "price": Decimal("39.90"),
        "shipping_price": Decimal("4.00"),
        "stock_quantity": 20,
        "main_image_url": "https://images.unsplash.com/photo-1611591437281-460bfbe1220a?q=80&w=1200&auto=format&fit=crop",
    },
]


def seed_catalog(db: Session) -> int:
    """Insert the demo catalog; returns 0 when the catalog already has items."""
    if db.scalar(select(func.count()).select_from(JewelryItem)):
        return 0
    db.add_all(JewelryItem(**sample) for sample in SAMPLE_ITEMS)
    db.commit()
    return len(SAMPLE_ITEMS)
