# backend/routes/products.py
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.product import Product
from models.users import User
from schemas.envelope import Envelope
from schemas.product import ProductIn, ProductOut, ProductPageOut, SearchResult
from services import product_catalog
from services.catalog_search import CatalogSearch
from utils.audit import write_log
from utils.catalog_client import CatalogClient, get_catalog_client
from utils.tokenJWT import require_admin

router = APIRouter(prefix="/api/products", tags=["Products"])

def _product_to_out(p: Product) -> ProductOut:
    return ProductOut(
        id=p.id,
        name=p.name,
        description=p.description,
        category=p.category,
        price=p.price,
        stock=p.stock,
        in_stock=p.stock > 0,
        image=p.image,
        rating=p.rating,
        num_reviews=p.num_reviews,
        tags=p.tag_list,
        benefits=p.benefits,
        nutrition=p.nutrition,
        unit=p.unit,
        is_organic=p.is_organic,
        created_at=p.created_at,
    )

def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# Search local products, optionally topped up from the external catalog
# (declared before /{product_id})
@router.get("/search", response_model=Envelope[SearchResult], response_model_exclude_none=True)
async def search_products(
    q: Optional[str] = Query(None, description="Search term, at least 2 characters"),
    category: Optional[str] = Query(None, description="Filter by category"),
    limit: int = Query(20, description="Maximum results (capped at 50)"),
    include_external: bool = Query(False, alias="includeExternal"),
    db: Session = Depends(get_db),
    catalog_client: CatalogClient = Depends(get_catalog_client),
):
    searcher = CatalogSearch(db, catalog_client, max_limit=settings.SEARCH_MAX_LIMIT)
    result = await searcher.search(q, category=category, limit=limit, include_external=include_external)
    return Envelope[SearchResult](data=SearchResult.model_validate(result))


# Browse the catalogue: filters, sorting and pagination
@router.get("", response_model=Envelope[ProductPageOut], response_model_exclude_none=True)
def list_products(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    sort: Optional[str] = Query(None, description="price-asc, price-desc, rating or newest"),
    page: int = Query(1),
    limit: int = Query(product_catalog.DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    result = product_catalog.list_products(
        db, category=category, search=search, min_price=min_price, max_price=max_price,
        sort=sort, page=page, page_size=limit,
    )
    items = [_product_to_out(p) for p in result.items]
    return Envelope[ProductPageOut](data=ProductPageOut(
        items=items, count=len(items), total=result.total, page=result.page, pages=result.pages,
    ))


@router.get("/{product_id}", response_model=Envelope[ProductOut], response_model_exclude_none=True)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return Envelope[ProductOut](data=_product_to_out(product_catalog.get_product(db, product_id)))


# Add a product (admin only)
@router.post(
    "",
    response_model=Envelope[ProductOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def add_product(
    payload: ProductIn,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = product_catalog.create_product(db, payload.model_dump(exclude_unset=True))
    write_log(db, user_id=admin.id, action="PRODUCT_CREATE", resource="products", status="SUCCESS",
        ip=_client_ip(request), meta={"id": product.id, "name": product.name})
    return Envelope[ProductOut](data=_product_to_out(product), message="Product created successfully")


# Update the supplied fields of a product (admin only)
@router.put("/{product_id}", response_model=Envelope[ProductOut], response_model_exclude_none=True)
def update_product(
    product_id: int,
    payload: ProductIn,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    changes = payload.model_dump(exclude_unset=True)
    product = product_catalog.update_product(db, product_id, changes)
    write_log(db, user_id=admin.id, action="PRODUCT_UPDATE", resource="products", status="SUCCESS",
        ip=_client_ip(request), meta={"id": product.id, "fields": sorted(changes)})
    return Envelope[ProductOut](data=_product_to_out(product), message="Product updated successfully")


@router.delete("/{product_id}", response_model=Envelope[ProductOut], response_model_exclude_none=True)
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    pid, name = product_catalog.delete_product(db, product_id)
    write_log(db, user_id=admin.id, action="PRODUCT_DELETE", resource="products", status="SUCCESS",
        ip=_client_ip(request), meta={"id": pid, "name": name})
    return Envelope[ProductOut](message="Product deleted successfully")
