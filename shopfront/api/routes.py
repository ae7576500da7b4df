import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from shopfront.api.deps import get_order_service, get_settings, is_admin, require_admin, require_customer_or_admin
from shopfront.caching.redis_client import RedisClient, get_redis
from shopfront.core.config import Settings
from shopfront.core.errors import NotFound
from shopfront.core.models import OrderCreate, OrderPage, OrderResponse, OrderStats, OrderStatusUpdate
from shopfront.data.models import User
from shopfront.messaging.producer import OrderEventProducer, get_producer
from shopfront.services.orders import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: Request,
    order_in: OrderCreate,
    user: User = Depends(require_customer_or_admin),
    service: OrderService = Depends(get_order_service),
    producer: OrderEventProducer = Depends(get_producer),
    redis: RedisClient = Depends(get_redis),
    settings: Settings = Depends(get_settings),
):
    # 1. Rate Limiting
    client_ip = request.client.host if request.client else "unknown"
    allowed = await redis.check_rate_limit(
        client_ip,
        limit=settings.API_RATE_LIMIT_REQUESTS,
        window=settings.API_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests"
        )

    # 2. Place the order atomically
    order = await service.place_order(user.id, order_in.address_id, order_in.items)

    # 3. Publish Event; the order is already committed
    try:
        await producer.publish_order_created(order)
    except Exception as e:
        logger.error(f"Failed to publish OrderCreated for order {order.id}: {e}")

    return order

@router.get("/", response_model=OrderPage)
async def list_orders(
    order_status: Optional[str] = Query(None, alias="status"),
    page: int = 1,
    limit: int = 10,
    user: User = Depends(require_customer_or_admin),
    service: OrderService = Depends(get_order_service),
):
    customer_id = None if is_admin(user) else user.id
    return await service.list_orders(customer_id=customer_id, status=order_status, page=page, limit=limit)

@router.get("/stats/summary", response_model=OrderStats, dependencies=[Depends(require_admin)])
async def order_stats(service: OrderService = Depends(get_order_service)):
    return await service.order_stats()

@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: User = Depends(require_customer_or_admin),
    service: OrderService = Depends(get_order_service),
    redis: RedisClient = Depends(get_redis),
    settings: Settings = Depends(get_settings),
):
    # 1. Check Cache
    cached_order = await redis.get_cached_order(order_id)
    if cached_order:
        if not is_admin(user) and cached_order.get("customer_id") != user.id:
            raise NotFound("order", order_id)
        return cached_order

    # 2. Fetch from DB
    customer_id = None if is_admin(user) else user.id
    order = await service.get_order(order_id, customer_id=customer_id)

    # 3. Cache Result
    await redis.set_cached_order(order.id, order.model_dump(mode="json"), ttl=settings.ORDER_CACHE_TTL_SECONDS)

    return order

@router.put("/{order_id}/status", response_model=OrderResponse, dependencies=[Depends(require_admin)])
async def update_order_status(
    order_id: int,
    changes: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
    producer: OrderEventProducer = Depends(get_producer),
    redis: RedisClient = Depends(get_redis),
):
    order = await service.update_status(order_id, status=changes.status, payment_status=changes.payment_status)
    await redis.invalidate_order(order_id)

    try:
        await producer.publish_order_status_changed(order)
    except Exception as e:
        logger.error(f"Failed to publish OrderStatusChanged for order {order_id}: {e}")

    return order
