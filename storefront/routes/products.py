import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import require_admin
from storefront.errors import NotFound
from storefront.models import Product
from storefront.services.reviews import list_product_reviews

router = APIRouter(prefix="/products", tags=["products"])


# =====================================================
# PYDANTIC SCHEMAS
# =====================================================

class ProductPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    brand: Optional[str] = None
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    count_in_stock: int = Field(0, alias="countInStock", ge=0)
    category_id: Optional[uuid.UUID] = Field(None, alias="categoryId")


def _serialize_product(p: Product) -> dict:
    return {
        "id":             str(p.id),
        "name":           p.name,
        "description":    p.description,
        "brand":          p.brand,
        "image":          p.image,
        "price":          p.price,
        "count_in_stock": p.count_in_stock,
        "category_id":    str(p.category_id) if p.category_id else None,
        "created_at":     p.created_at,
        "updated_at":     p.updated_at,
    }


def _get_product_or_404(db: Session, product_id) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")
    return product


# =====================================================
# PUBLIC: LIST PRODUCTS
# =====================================================

@router.get("")
def list_products(
    db: Session = Depends(get_db),
    category: Optional[uuid.UUID] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
):
    query = db.query(Product)

    if category:
        query = query.filter(Product.category_id == category)
    if brand:
        query = query.filter(Product.brand == brand)
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    products = query.order_by(Product.created_at.desc()).all()
    return [_serialize_product(p) for p in products]


# =====================================================
# PUBLIC: PRODUCT DETAILS (with approved reviews)
# =====================================================

@router.get("/{product_id}")
def get_product(product_id: uuid.UUID, db: Session = Depends(get_db)):
    product = _get_product_or_404(db, product_id)
    return {
        **_serialize_product(product),
        "reviews": list_product_reviews(db, product.id),
    }


# =====================================================
# ADMIN: MANAGE PRODUCTS
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_product(payload: ProductPayload, db: Session = Depends(get_db)):
    product = Product(**payload.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return _serialize_product(product)


@router.put("/{product_id}", dependencies=[Depends(require_admin)])
def update_product(
    product_id: uuid.UUID,
    payload: ProductPayload,
    db: Session = Depends(get_db),
):
    product = _get_product_or_404(db, product_id)

    for field, value in payload.model_dump().items():
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    return _serialize_product(product)


@router.delete("/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: uuid.UUID, db: Session = Depends(get_db)):
    product = _get_product_or_404(db, product_id)
    db.delete(product)
    db.commit()
    return {"message": "Product removed"}
