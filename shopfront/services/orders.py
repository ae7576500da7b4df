"""
Order placement, status transitions and order reads.

``OrderService.place_order`` is the only multi-entity write in the system: it
locks the cart's product rows, checks and decrements stock, prices each line
from the product's current price and discount, and writes the order with its
items. All of it happens in one unit of work, so either every write lands or
none does.
"""
import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, NamedTuple, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select, update

from shopfront.core.errors import InsufficientStock, NotFound, StoreTimeout, ValidationError
from shopfront.core.models import CountByValue, OrderPage, OrderResponse, OrderStats, Pagination
from shopfront.data.addresses import AddressStore
from shopfront.data.catalog import CatalogStore
from shopfront.data.database import Database
from shopfront.data.models import Order, OrderItem, OrderStatus, PaymentStatus, User, utcnow

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

E = TypeVar("E", OrderStatus, PaymentStatus)

class CartLine(NamedTuple):
    product_id: int
    quantity: int

def discounted_price(price, discount) -> Decimal:
    """Unit price after discount, rounded half-up to cents."""
    price = Decimal(str(price))
    discount = Decimal(str(discount or 0))
    return (price * (1 - discount / 100)).quantize(CENTS, rounding=ROUND_HALF_UP)

def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0

def normalize_cart(items: Optional[Iterable]) -> List[CartLine]:
    lines = [CartLine(getattr(item, "product_id", None), getattr(item, "quantity", None)) for item in items or ()]
    if not lines:
        raise ValidationError("An order must contain at least one item")
    for line in lines:
        if not _is_positive_int(line.product_id) or not _is_positive_int(line.quantity):
            raise ValidationError("Each item must have a valid product_id and positive quantity")
    return lines

def _coerce(enum_cls: Type[E], value, label: str) -> Optional[E]:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{label} must be one of: {allowed}")

# Status fields an update may touch, each bound to one column.
_STATUS_COLUMNS = {
    "status": Order.status,
    "payment_status": Order.payment_status,
}

class OrderService:
    def __init__(
        self,
        database: Database,
        catalog: Optional[CatalogStore] = None,
        addresses: Optional[AddressStore] = None,
        transaction_timeout: Optional[float] = None,
    ):
        self.database = database
        self.catalog = catalog or CatalogStore()
        self.addresses = addresses or AddressStore()
        self.transaction_timeout = transaction_timeout

    async def place_order(self, customer_id: int, address_id: int, items: Sequence) -> OrderResponse:
        """
        Creates one order for ``customer_id`` or nothing at all.

        Raises ValidationError, NotFound (address or product), InsufficientStock,
        StoreTimeout or TransientStoreError. Every failure leaves stock and
        orders exactly as they were.
        """
        if not _is_positive_int(address_id):
            raise ValidationError("A valid address_id is required")
        lines = normalize_cart(items)

        try:
            return await asyncio.wait_for(
                self._place_order(customer_id, address_id, lines),
                timeout=self.transaction_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Order placement for customer {customer_id} timed out after {self.transaction_timeout}s")
            raise StoreTimeout("Placing the order took too long and was rolled back, please retry")

    async def _place_order(self, customer_id: int, address_id: int, lines: List[CartLine]) -> OrderResponse:
        async with self.database.unit_of_work() as session:
            address = await self.addresses.require_owned(session, address_id, customer_id)

            products = await self.catalog.lock_products(session, (line.product_id for line in lines))
            remaining = {}
            order_items = []
            total = Decimal("0.00")

            for line in lines:
                product = products.get(line.product_id)
                if product is None:
                    raise NotFound("product", line.product_id)

                available = remaining.get(product.id, product.stock_quantity)
                if available < line.quantity:
                    logger.warning(
                        f"Rejecting order for customer {customer_id}: product {product.id} "
                        f"has {available} left, {line.quantity} requested"
                    )
                    raise InsufficientStock(product.id, product.name, available, line.quantity)

                unit_price = discounted_price(product.price, product.discount)
                subtotal = unit_price * line.quantity
                total += subtotal

                if not await self.catalog.decrement_stock(session, product.id, line.quantity):
                    # Row lock unsupported by the backend and another order won the race.
                    raise InsufficientStock(product.id, product.name, available, line.quantity)
                remaining[product.id] = available - line.quantity

                order_items.append(
                    OrderItem(
                        product=product,
                        quantity=line.quantity,
                        price=unit_price,
                        subtotal=subtotal,
                    )
                )

            customer = await session.get(User, customer_id)
            order = Order(
                customer_id=customer_id,
                address_id=address_id,
                customer=customer,
                delivery_address=address,
                total_price=total,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.UNPAID.value,
                items=order_items,
            )
            session.add(order)
            await session.flush()
            created = OrderResponse.model_validate(order)

        logger.info(f"Placed order {created.id} for customer {customer_id}, total {created.total_price}")
        return created

    async def update_status(self, order_id: int, status=None, payment_status=None) -> OrderResponse:
        changes = {
            "status": _coerce(OrderStatus, status, "Status"),
            "payment_status": _coerce(PaymentStatus, payment_status, "Payment status"),
        }
        values = {
            _STATUS_COLUMNS[field]: value.value
            for field, value in changes.items()
            if value is not None
        }
        if not values:
            raise ValidationError("At least one status field must be provided for update")
        values[Order.updated_at] = utcnow()

        async with self.database.unit_of_work() as session:
            result = await session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("order", order_id)
            order = await session.get(Order, order_id, populate_existing=True)
            updated = OrderResponse.model_validate(order)

        logger.info(f"Order {order_id} now {updated.status.value}/{updated.payment_status.value}")
        return updated

    async def get_order(self, order_id: int, customer_id: Optional[int] = None) -> OrderResponse:
        """Reads one order. With ``customer_id`` set, other customers' orders are NotFound."""
        stmt = select(Order).where(Order.id == order_id)
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)

        async with self.database.session() as session:
            order = (await session.execute(stmt)).scalar_one_or_none()
            if order is None:
                raise NotFound("order", order_id)
            return OrderResponse.model_validate(order)

    async def list_orders(
        self,
        customer_id: Optional[int] = None,
        status=None,
        page: int = 1,
        limit: int = 10,
    ) -> OrderPage:
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive integers")
        status = _coerce(OrderStatus, status, "Status")

        filters = []
        if customer_id is not None:
            filters.append(Order.customer_id == customer_id)
        if status is not None:
            filters.append(Order.status == status.value)

        stmt = (
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        async with self.database.session() as session:
            orders = [OrderResponse.model_validate(o) for o in (await session.execute(stmt)).scalars()]
            total = await session.scalar(select(func.count(Order.id)).where(*filters)) or 0

        return OrderPage(orders=orders, pagination=Pagination.build(page, limit, total))

    async def order_stats(self) -> OrderStats:
        async with self.database.session() as session:
            total_orders = await session.scalar(select(func.count(Order.id))) or 0
            revenue = await session.scalar(
                select(func.coalesce(func.sum(Order.total_price), 0))
                .where(Order.payment_status == PaymentStatus.PAID.value)
            )
            by_status = await session.execute(
                select(Order.status, func.count(Order.id).label("count"))
                .group_by(Order.status)
                .order_by(func.count(Order.id).desc(), Order.status)
            )
            by_payment = await session.execute(
                select(Order.payment_status, func.count(Order.id).label("count"))
                .group_by(Order.payment_status)
                .order_by(func.count(Order.id).desc(), Order.payment_status)
            )

            return OrderStats(
                total_orders=total_orders,
                total_revenue=Decimal(str(revenue or 0)).quantize(CENTS),
                status_distribution=[CountByValue(value=v, count=c) for v, c in by_status],
                payment_distribution=[CountByValue(value=v, count=c) for v, c in by_payment],
            )
