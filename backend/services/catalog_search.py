"""Product search over the local catalogue, optionally topped up from an
external catalog.

The external lookup runs only after the local query, only when asked for,
and only when the local results do not fill ``limit``. Its failures are
logged and treated as "no external results". External records are mapped
one by one; a record that cannot be mapped is dropped on its own.
"""
import logging
import math
import random
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from models.product import Product
from services.errors import ExternalServiceDegraded, InvalidArgument

logger = logging.getLogger(__name__)

HARD_LIMIT = 50
DEFAULT_CATEGORY = "Farm Products"
ORGANIC_KEYWORDS = ("organic", "bio", "ecologic", "certified", "natural")
CATEGORY_BUCKETS = (
    ("Dairy", ("dairy", "milk", "cheese")),
    ("Vegetables", ("vegetable", "carrot", "potato")),
    ("Fruits", ("fruit", "apple", "banana")),
    ("Organic Medicines", ("medicine", "supplement", "vitamin")),
)
LIKE_ESCAPE = "\\"


def like_pattern(term: str) -> str:
    """``%term%`` with LIKE wildcards in *term* matched literally."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def _text(value) -> Optional[str]:
    # Catalog fields arrive as strings, numbers or lists of tags
    if value is None or isinstance(value, (dict, bool)):
        return None
    if isinstance(value, (list, tuple)):
        parts = [str(v) for v in value if isinstance(v, (str, int, float)) and not isinstance(v, bool)]
        return ", ".join(parts) or None
    text = str(value).strip()
    return text or None


def is_organic(labels) -> bool:
    lowered = (_text(labels) or "").lower()
    return any(keyword in lowered for keyword in ORGANIC_KEYWORDS)


def map_category(external_category) -> str:
    lowered = (_text(external_category) or "").lower()
    for category, keywords in CATEGORY_BUCKETS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def format_nutrition(raw: dict) -> str:
    parts = []
    for key, label, suffix in (
        ("energy_value", "Energy", " kcal"),
        ("carbohydrates_value", "Carbs", "g"),
        ("fat_value", "Fat", "g"),
        ("proteins_value", "Protein", "g"),
    ):
        value = _text(raw.get(key))
        if value:
            parts.append(f"{label}: {value}{suffix}")
    return ", ".join(parts) if parts else "Nutrition info not available"


def _price(raw: dict, rng: random.Random) -> float:
    value = raw.get("price")
    if not isinstance(value, bool):
        try:
            price = float(value)
        except (TypeError, ValueError):
            price = None
        if price is not None and math.isfinite(price) and price >= 0:
            return price
    # Placeholder price for catalog entries that carry no usable one
    return float(rng.randint(5, 54))


def map_external_product(raw: dict, rng: random.Random) -> Optional[dict]:
    """Convert one external catalog record to the local product shape.

    Returns None for records without a usable name.
    """
    name = _text(raw.get("product_name"))
    if not name:
        return None
    code = _text(raw.get("code")) or _text(raw.get("id"))
    return {
        "id": code or f"external-{rng.random()}",
        "name": name,
        "description": _text(raw.get("generic_name")) or _text(raw.get("brands")) or "Product from OpenFoodFacts",
        "price": _price(raw, rng),
        "category": map_category(raw.get("categories") or raw.get("pnns_groups_1")),
        "image": _text(raw.get("image_url")) or _text(raw.get("image_front_url")) or "/images/no-image.png",
        "rating": 0.0,
        "num_reviews": 0,
        "unit": _text(raw.get("serving_size_unit")) or _text(raw.get("quantity")) or "piece",
        "is_organic": is_organic(raw.get("labels") or name),
        "nutrition": format_nutrition(raw),
        "tags": [],
        "stock": 100,
        "in_stock": True,
        "source": "external",
        "external_source": "OpenFoodFacts",
        "external_code": _text(raw.get("code")),
        "external_url": _text(raw.get("url")),
        "created_at": None,
    }


def local_product_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "category": product.category,
        "image": product.image,
        "rating": product.rating,
        "num_reviews": product.num_reviews,
        "unit": product.unit,
        "is_organic": product.is_organic,
        "nutrition": product.nutrition,
        "tags": product.tag_list,
        "stock": product.stock,
        "in_stock": product.stock > 0,
        "source": "local",
        "created_at": product.created_at,
    }


class CatalogSearch:
    def __init__(self, db: Session, catalog_client, rng: Optional[random.Random] = None, max_limit: int = HARD_LIMIT):
        self.db = db
        self.catalog_client = catalog_client
        self.rng = rng or random.Random()
        self.max_limit = min(max_limit, HARD_LIMIT)

    def search_local(self, term: str, category: Optional[str], limit: int) -> List[Product]:
        like = like_pattern(term)
        query = self.db.query(Product).filter(
            or_(
                Product.name.ilike(like, escape=LIKE_ESCAPE),
                Product.description.ilike(like, escape=LIKE_ESCAPE),
                Product.tags.ilike(like, escape=LIKE_ESCAPE),
                Product.benefits.ilike(like, escape=LIKE_ESCAPE),
            )
        )
        if category:
            # Whole-value match, case-insensitive
            literal = like_pattern(category)[1:-1]
            query = query.filter(Product.category.ilike(literal, escape=LIKE_ESCAPE))
        return (
            query.order_by(Product.rating.desc(), Product.created_at.desc(), Product.id.desc())
            .limit(limit)
            .all()
        )

    def _local_results(self, term: str, category: Optional[str], limit: int) -> List[dict]:
        return [local_product_dict(p) for p in self.search_local(term, category, limit)]

    async def search_external(self, term: str, wanted: int) -> List[dict]:
        try:
            raw_products = await self.catalog_client.search(term, page_size=wanted)
        except ExternalServiceDegraded as e:
            logger.warning("External catalog unavailable for %r: %s", term, e)
            return []

        mapped = []
        for raw in raw_products:
            try:
                product = map_external_product(raw, self.rng)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping malformed catalog record %r: %s", raw.get("code"), e)
                continue
            if product is not None:
                mapped.append(product)
        return mapped[:wanted]

    async def search(
        self,
        term: Optional[str],
        category: Optional[str] = None,
        limit: int = 20,
        include_external: bool = False,
    ) -> dict:
        term = (term or "").strip()
        if len(term) < 2:
            raise InvalidArgument("Search term must be at least 2 characters")
        if limit is None or limit < 1:
            raise InvalidArgument("Limit must be at least 1")
        limit = min(limit, self.max_limit)

        # Blocking ORM query; keep it off the event loop
        local = await run_in_threadpool(self._local_results, term, category, limit)

        external: List[dict] = []
        if include_external and len(local) < limit:
            external = await self.search_external(term, limit - len(local))

        combined = (local + external)[:limit]
        local_count = sum(1 for p in combined if p["source"] == "local")
        return {
            "results": combined,
            "local_count": local_count,
            "external_count": len(combined) - local_count,
            "total": len(combined),
        }
