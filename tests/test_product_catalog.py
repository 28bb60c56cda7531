"""Catalogue browsing and admin maintenance of products."""

import pytest

from conftest import make_product, stock_of
from models.cart import CartItem
from models.product import Product
from services import cart_store, order_factory, product_catalog
from services.cart_store import CartIdentity
from services.errors import InvalidArgument, NotFound
from services.order_factory import CheckoutLine, CheckoutRequest, ShippingAddress

VALID = {
    "name": "Cold Pressed Mustard Oil",
    "description": "Stone ground, unrefined",
    "category": "Farm Products",
    "price": 6.5,
    "stock": 12,
}


class TestValidation:

    def test_collects_every_error(self):
        errors = product_catalog.validate_product({"stock": -1})
        assert errors == [
            "Product name is required",
            "Valid product price is required",
            "Product category is required",
            "Product description is required",
            "Stock cannot be negative",
        ]

    def test_unknown_category(self):
        errors = product_catalog.validate_product(dict(VALID, category="Snacks"))
        assert errors == [
            "Product category must be one of: Dairy, Organic Medicines, Farm Products, Fruits, Vegetables"
        ]

    def test_partial_checks_only_supplied_fields(self):
        assert product_catalog.validate_product({"price": 3.0}, partial=True) == []
        assert product_catalog.validate_product({"name": " "}, partial=True) == ["Product name is required"]


class TestCreateAndUpdate:

    def test_create_applies_defaults(self, db):
        product = product_catalog.create_product(db, dict(VALID, tags=["oil", " kitchen "]))
        assert product.id is not None
        assert product.stock == 12
        assert product.tags == "oil,kitchen"
        assert product.unit == "piece"
        assert product.is_organic is True
        assert product.rating == 0

    def test_create_rejects_invalid(self, db):
        with pytest.raises(InvalidArgument) as exc:
            product_catalog.create_product(db, dict(VALID, price=0))
        assert exc.value.errors == ["Valid product price is required"]
        assert db.query(Product).count() == 0

    def test_update_changes_only_supplied_fields(self, db):
        p = make_product(db, name="Ghee", price=10.0, stock=3)
        product = product_catalog.update_product(db, p.id, {"price": 12.5, "stock": 8})
        assert (product.name, product.price) == ("Ghee", 12.5)
        assert stock_of(db, p.id) == 8

    def test_update_missing_product(self, db):
        with pytest.raises(NotFound):
            product_catalog.update_product(db, 404, {"price": 1.0})

    def test_update_rejects_negative_stock(self, db):
        p = make_product(db, stock=3)
        with pytest.raises(InvalidArgument):
            product_catalog.update_product(db, p.id, {"stock": -2})
        assert stock_of(db, p.id) == 3


class TestDelete:

    def test_removes_cart_lines_and_keeps_order_snapshot(self, db):
        identity = CartIdentity.for_user(1)
        p = make_product(db, name="Saffron", price=30.0, stock=5)
        address = ShippingAddress(street="1 Main", city="Pune", state="MH", zip_code="411001", country="India")
        order = order_factory.create_order(db, identity, CheckoutRequest(
            lines=[CheckoutLine.from_request(p.id, 1)], total_amount=30.0,
            shipping_address=address, payment_method="cod",
        ))
        cart_store.add_item(db, CartIdentity.for_guest("s1"), p.id, 2)

        pid, name = product_catalog.delete_product(db, p.id)

        assert (pid, name) == (p.id, "Saffron")
        assert db.query(CartItem).count() == 0
        db.expire_all()
        item = order_factory.get_order(db, order.id).items[0]
        assert item.product_id is None
        assert item.external_ref == str(pid)
        assert (item.name, item.price) == ("Saffron", 30.0)

    def test_missing_product(self, db):
        with pytest.raises(NotFound):
            product_catalog.delete_product(db, 404)


class TestListProducts:

    def test_newest_first_with_pagination(self, db):
        products = [make_product(db, name=f"Item {i}") for i in range(5)]
        page = product_catalog.list_products(db, page=2, page_size=2)
        assert [p.id for p in page.items] == [products[2].id, products[1].id]
        assert (page.total, page.page, page.pages) == (5, 2, 3)

    def test_filters(self, db):
        cheap = make_product(db, name="Carrot", category="Vegetables", price=2.0)
        make_product(db, name="Truffle", category="Vegetables", price=80.0)
        make_product(db, name="Apple", category="Fruits", price=3.0)

        page = product_catalog.list_products(db, category="vegetables", max_price=10)

        assert [p.id for p in page.items] == [cheap.id]

    def test_all_category_is_no_filter(self, db):
        make_product(db, category="Fruits")
        make_product(db, category="Dairy")
        assert product_catalog.list_products(db, category="All").total == 2

    def test_search_name_description_and_tags(self, db):
        a = make_product(db, name="Paneer")
        b = make_product(db, name="Curd", description="Set in clay pots, like paneer")
        c = make_product(db, name="Ghee", tags="paneer-friendly")
        make_product(db, name="Honey")
        page = product_catalog.list_products(db, search="PANEER")
        assert {p.id for p in page.items} == {a.id, b.id, c.id}

    @pytest.mark.parametrize("sort,expected", [
        ("price-asc", ["B", "C", "A"]),
        ("price-desc", ["A", "C", "B"]),
        ("rating", ["C", "A", "B"]),
        ("newest", ["C", "B", "A"]),
        ("bogus", ["C", "B", "A"]),
    ])
    def test_sorting(self, db, sort, expected):
        make_product(db, name="A", price=9.0, rating=3.0)
        make_product(db, name="B", price=1.0, rating=1.0)
        make_product(db, name="C", price=5.0, rating=5.0)
        page = product_catalog.list_products(db, sort=sort)
        assert [p.name for p in page.items] == expected

    def test_page_size_is_capped(self, db):
        assert product_catalog.list_products(db, page_size=1000).page_size == 100

    def test_rejects_bad_page(self, db):
        with pytest.raises(InvalidArgument):
            product_catalog.list_products(db, page=0)
