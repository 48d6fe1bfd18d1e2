from decimal import Decimal

import pytest
from sqlalchemy import func, select

import carts
import catalog
from errors import NotFoundError
from models import CartItem, JewelryImage
from schemas import JewelryImageIn, JewelryItemIn


def item_payload(**overrides) -> JewelryItemIn:
    data = {
        "name": "Moonstone Pendant",
        "description": "Rainbow moonstone set in silver.",
        "category": "Necklaces",
        "collection": "Moonlight",
        "price": Decimal("75.00"),
        "shipping_price": Decimal("6.00"),
        "stock_quantity": 4,
        "gallery_images": [
            JewelryImageIn(url="https://cdn.example.com/p/2.jpg", sort_order=1),
            JewelryImageIn(url="https://cdn.example.com/p/1.jpg", sort_order=0),
        ],
    }
    data.update(overrides)
    return JewelryItemIn(**data)


def test_add_and_get_item_orders_gallery(db):
    created = catalog.add_item(db, item_payload())

    item = catalog.get_item(db, created.id)

    assert item.name == "Moonstone Pendant"
    assert item.price == Decimal("75.00")
    assert [img.url for img in item.gallery_images] == [
        "https://cdn.example.com/p/1.jpg",
        "https://cdn.example.com/p/2.jpg",
    ]


def test_get_missing_item(db):
    with pytest.raises(NotFoundError):
        catalog.get_item(db, 404)


def test_update_replaces_fields_and_gallery(db):
    created = catalog.add_item(db, item_payload())

    updated = catalog.update_item(db, created.id, item_payload(
        name="Moonstone Pendant XL",
        price=Decimal("95.00"),
        is_available=False,
        gallery_images=[JewelryImageIn(url="https://cdn.example.com/p/xl.jpg")],
    ))

    assert updated.name == "Moonstone Pendant XL"
    assert updated.price == Decimal("95.00")
    assert updated.is_available is False
    assert [img.url for img in updated.gallery_images] == ["https://cdn.example.com/p/xl.jpg"]
    assert db.scalar(select(func.count()).select_from(JewelryImage)) == 1


def test_update_missing_item(db):
    with pytest.raises(NotFoundError):
        catalog.update_item(db, 404, item_payload())


def test_delete_item_removes_images_and_cart_lines(db, make_user):
    user = make_user()
    created = catalog.add_item(db, item_payload())
    carts.add_item(db, user.id, created.id, 1)

    catalog.delete_item(db, created.id)

    with pytest.raises(NotFoundError):
        catalog.get_item(db, created.id)
    assert db.scalar(select(func.count()).select_from(JewelryImage)) == 0
    assert db.scalar(select(func.count()).select_from(CartItem)) == 0
    with pytest.raises(NotFoundError):
        catalog.delete_item(db, created.id)


def test_list_filters_categories_and_collections(db, make_item):
    make_item(name="Hoops", category="Earrings", collection="Autumn")
    make_item(name="Studs", category="Earrings", collection=None)
    make_item(name="Locket", category="Necklaces", collection="Moonlight")

    assert [i.name for i in catalog.list_items(db)] == ["Hoops", "Studs", "Locket"]
    assert [i.name for i in catalog.list_items(db, category="Earrings")] == ["Hoops", "Studs"]
    assert [i.name for i in catalog.list_items(db, collection="Moonlight")] == ["Locket"]
    assert catalog.list_categories(db) == ["Earrings", "Necklaces"]
    assert catalog.list_collections(db) == ["Autumn", "Moonlight"]


def test_seed_catalog_only_once(db):
    assert catalog.seed_catalog(db) == len(catalog.SAMPLE_ITEMS)
    assert catalog.seed_catalog(db) == 0
    assert len(catalog.list_items(db)) == len(catalog.SAMPLE_ITEMS)
