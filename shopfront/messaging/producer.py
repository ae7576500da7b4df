import json
import logging
from datetime import datetime, timezone
import aio_pika
from fastapi import Request
from shopfront.core.config import Settings
from shopfront.core.models import OrderResponse

logger = logging.getLogger(__name__)

ORDERS_EXCHANGE = "orders"

class OrderEventProducer:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.connection = None
        self.channel = None
        self.exchange = None

    async def connect(self):
        if not self.connection:
            try:
                self.connection = await aio_pika.connect_robust(self.settings.RABBITMQ_URL)
                self.channel = await self.connection.channel()
                self.exchange = await self.channel.declare_exchange(
                    ORDERS_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True
                )
                logger.info("Connected to RabbitMQ for producing.")
            except Exception as e:
                logger.error(f"Failed to connect to RabbitMQ producer: {e}")
                raise

    async def close(self):
        if self.connection:
            await self.connection.close()
            self.connection = None
            self.exchange = None

    async def _publish(self, event_type: str, routing_key: str, event_id: str, payload: dict):
        if not self.exchange:
            await self.connect()

        event = {
            "event_type": event_type,
            "event_id": event_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }

        message = aio_pika.Message(
            body=json.dumps(event, default=str).encode(),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )

        await self.exchange.publish(message, routing_key=routing_key)
        logger.info(f"Published {event_type} event {event_id}")

    async def publish_order_created(self, order: OrderResponse):
        await self._publish(
            "OrderCreated",
            "order.created",
            f"order-{order.id}-created",
            order.model_dump(mode="json"),
        )

    async def publish_order_status_changed(self, order: OrderResponse):
        await self._publish(
            "OrderStatusChanged",
            "order.status_changed",
            f"order-{order.id}-{order.status.value}-{order.payment_status.value}",
            {
                "order_id": order.id,
                "customer_id": order.customer_id,
                "status": order.status.value,
                "payment_status": order.payment_status.value,
            },
        )

async def get_producer(request: Request) -> OrderEventProducer:
    return request.app.state.producer
