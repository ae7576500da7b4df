import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.core.errors import NotFound, ValidationError
from shopfront.core.models import ProductCreate, ProductUpdate
from shopfront.data.models import Product, utcnow

logger = logging.getLogger(__name__)

# Fields a product update may touch, each bound to one column.
_PRODUCT_COLUMNS = {
    "name": Product.name,
    "description": Product.description,
    "price": Product.price,
    "discount": Product.discount,
    "category": Product.category,
    "type": Product.type,
    "type2": Product.type2,
    "style": Product.style,
    "style2": Product.style2,
    "stock_quantity": Product.stock_quantity,
}

# Columns an update may clear by sending null.
_NULLABLE_FIELDS = {"description", "category", "type", "type2", "style", "style2"}

class CatalogStore:
    """Product reads and writes. Callers own the session and its transaction."""

    async def lock_products(self, session: AsyncSession, product_ids: Iterable[int]) -> Dict[int, Product]:
        """
        Loads the given products with an exclusive row lock.

        Rows are locked in ascending id order so two carts touching the same
        products always queue on the same first row instead of deadlocking.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = (
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return {product.id: product for product in result.scalars()}

    async def decrement_stock(self, session: AsyncSession, product_id: int, quantity: int) -> bool:
        """Returns False when the row no longer has ``quantity`` units left."""
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def get_product(self, session: AsyncSession, product_id: int) -> Product:
        product = await session.get(Product, product_id)
        if product is None:
            raise NotFound("product", product_id)
        return product

    async def list_products(
        self,
        session: AsyncSession,
        page: int = 1,
        limit: int = 20,
        category: Optional[str] = None,
        type: Optional[str] = None,
        style: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Product], int]:
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive integers")

        filters = []
        if category:
            filters.append(Product.category == category)
        if type:
            filters.append(or_(Product.type == type, Product.type2 == type))
        if style:
            filters.append(or_(Product.style == style, Product.style2 == style))
        if search:
            filters.append(Product.name.ilike(f"%{search}%"))

        stmt = (
            select(Product)
            .where(*filters)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        products = list((await session.execute(stmt)).scalars())
        total = await session.scalar(select(func.count(Product.id)).where(*filters))
        return products, total or 0

    async def list_categories(self, session: AsyncSession) -> List[str]:
        stmt = (
            select(Product.category)
            .where(Product.category.is_not(None))
            .distinct()
            .order_by(Product.category)
        )
        return list((await session.execute(stmt)).scalars())

    async def list_types(self, session: AsyncSession) -> List[str]:
        """Distinct primary and secondary types. The catch-all 'All' secondary type is left out."""
        return await self._distinct_pair(session, Product.type, Product.type2, exclude=("All",))

    async def list_styles(self, session: AsyncSession) -> List[str]:
        return await self._distinct_pair(session, Product.style, Product.style2, exclude=("",))

    async def _distinct_pair(self, session: AsyncSession, primary, secondary, exclude=()) -> List[str]:
        first = await session.execute(select(primary).where(primary.is_not(None)).distinct())
        second = await session.execute(
            select(secondary).where(secondary.is_not(None), secondary.not_in(exclude)).distinct()
        )
        return sorted(set(first.scalars()) | set(second.scalars()))

    async def list_by_category(self, session: AsyncSession, category: str, limit: int = 10) -> List[Product]:
        if limit < 1:
            raise ValidationError("Limit must be a positive integer")
        stmt = (
            select(Product)
            .where(Product.category == category)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars())

    async def create_product(self, session: AsyncSession, data: ProductCreate) -> Product:
        product = Product(**data.model_dump())
        session.add(product)
        await session.flush()
        logger.info(f"Created product {product.id} ({product.name})")
        return product

    async def update_product(self, session: AsyncSession, product_id: int, data: ProductUpdate) -> Product:
        values = {
            _PRODUCT_COLUMNS[field]: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if field in _PRODUCT_COLUMNS and (value is not None or field in _NULLABLE_FIELDS)
        }
        if not values:
            raise ValidationError("At least one field must be provided for update")
        values[Product.updated_at] = utcnow()

        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount == 0:
            raise NotFound("product", product_id)
        return await session.get(Product, product_id, populate_existing=True)
