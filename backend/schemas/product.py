from pydantic import Field
from typing import List, Optional, Union
from datetime import datetime
from schemas.envelope import CamelModel


# Product as shown in search results (local or external)
class ProductSearchItem(CamelModel):
    id: Union[int, str]
    name: str
    description: Optional[str] = None
    price: float = Field(ge=0)
    category: str
    image: Optional[str] = None
    rating: float = 0
    num_reviews: int = 0
    unit: Optional[str] = None
    is_organic: bool = False
    nutrition: Optional[str] = None
    tags: List[str] = []
    stock: int = 0
    in_stock: bool = True
    source: str
    external_source: Optional[str] = None
    external_code: Optional[str] = None
    external_url: Optional[str] = None
    created_at: Optional[datetime] = None


class SearchResult(CamelModel):
    results: List[ProductSearchItem]
    local_count: int
    external_count: int
    total: int


# Create/update body for the admin catalogue endpoints. Everything is optional
# here; required fields are checked by the catalogue service so all problems
# come back in one errors list.
class ProductIn(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None
    image: Optional[str] = None
    tags: Optional[Union[List[str], str]] = None
    benefits: Optional[str] = None
    nutrition: Optional[str] = None
    unit: Optional[str] = None
    is_organic: Optional[bool] = None


class ProductOut(CamelModel):
    id: int
    name: str
    description: str
    category: str
    price: float
    stock: int
    in_stock: bool
    image: Optional[str] = None
    rating: float = 0
    num_reviews: int = 0
    tags: List[str] = []
    benefits: Optional[str] = None
    nutrition: Optional[str] = None
    unit: Optional[str] = None
    is_organic: bool = True
    created_at: Optional[datetime] = None


class ProductPageOut(CamelModel):
    items: List[ProductOut]
    count: int
    total: int
    page: int
    pages: int
