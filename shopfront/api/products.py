from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.api.deps import require_admin
from shopfront.core.models import CategoryProducts, Pagination, ProductCreate, ProductPage, ProductResponse, ProductUpdate
from shopfront.data.catalog import CatalogStore
from shopfront.data.database import get_db

router = APIRouter(prefix="/api/products", tags=["products"])

catalog = CatalogStore()

@router.get("/", response_model=ProductPage)
async def list_products(
    category: Optional[str] = None,
    type: Optional[str] = None,
    style: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1),
    limit: int = Query(20),
    db: AsyncSession = Depends(get_db),
):
    products, total = await catalog.list_products(
        db, page=page, limit=limit, category=category, type=type, style=style, search=search
    )
    return ProductPage(
        products=[ProductResponse.model_validate(p) for p in products],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/meta/categories", response_model=List[str])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await catalog.list_categories(db)

@router.get("/meta/types", response_model=List[str])
async def list_types(db: AsyncSession = Depends(get_db)):
    return await catalog.list_types(db)

@router.get("/meta/styles", response_model=List[str])
async def list_styles(db: AsyncSession = Depends(get_db)):
    return await catalog.list_styles(db)

@router.get("/category/{category}", response_model=CategoryProducts)
async def list_category(category: str, limit: int = Query(10), db: AsyncSession = Depends(get_db)):
    products = await catalog.list_by_category(db, category, limit=limit)
    return CategoryProducts(
        category=category,
        products=[ProductResponse.model_validate(p) for p in products],
    )

@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await catalog.get_product(db, product_id)

@router.post(
    "/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_product(product_in: ProductCreate, db: AsyncSession = Depends(get_db)):
    product = await catalog.create_product(db, product_in)
    await db.commit()
    return product

@router.put("/{product_id}", response_model=ProductResponse, dependencies=[Depends(require_admin)])
async def update_product(product_id: int, changes: ProductUpdate, db: AsyncSession = Depends(get_db)):
    product = await catalog.update_product(db, product_id, changes)
    await db.commit()
    return product
