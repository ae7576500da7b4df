import json
import logging
import aio_pika
from shopfront.caching.redis_client import RedisClient
from shopfront.core.config import Settings
from shopfront.core.errors import ShopError
from shopfront.data.models import PaymentStatus
from shopfront.services.orders import OrderService

logger = logging.getLogger(__name__)

PAYMENTS_EXCHANGE = "payments"

# Payment gateway outcome -> order payment status
PAYMENT_OUTCOMES = {
    "SUCCESS": PaymentStatus.PAID,
    "REFUNDED": PaymentStatus.REFUNDED,
}

class PaymentEventConsumer:
    def __init__(self, settings: Settings, service: OrderService, cache: RedisClient):
        self.settings = settings
        self.service = service
        self.cache = cache
        self.connection = None

    async def connect(self):
        try:
            self.connection = await aio_pika.connect_robust(self.settings.RABBITMQ_URL)
            channel = await self.connection.channel()
            exchange = await channel.declare_exchange(
                PAYMENTS_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True
            )
            queue = await channel.declare_queue("payment_updates", durable=True)
            await queue.bind(exchange, routing_key="payment.processed")

            await queue.consume(self.process_message)
            logger.info("Listening for PaymentProcessed events...")
        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ consumer: {e}")

    async def close(self):
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def process_message(self, message: aio_pika.IncomingMessage):
        # Anything escaping the block rejects the message without requeue.
        async with message.process(requeue=False, ignore_processed=True):
            try:
                body = json.loads(message.body)
            except ValueError as e:
                logger.error(f"Discarding malformed payment event: {e}")
                await message.reject(requeue=False)
                return

            try:
                await self.handle_event(body)
            except ShopError as e:
                if not e.retryable:
                    raise
                logger.warning(f"Payment event will be redelivered: {e}")
                await message.nack(requeue=True)

    async def handle_event(self, body) -> bool:
        """Applies one PaymentProcessed event. Returns True when an order changed."""
        if not isinstance(body, dict) or body.get("event_type") != "PaymentProcessed":
            return False

        payload = body.get("payload") or {}
        if not isinstance(payload, dict):
            logger.warning(f"PaymentProcessed event with non-object payload: {payload!r}")
            return False
        order_id = payload.get("order_id")
        outcome = payload.get("payment_status")
        if not order_id or not outcome:
            logger.warning(f"PaymentProcessed event without order_id/payment_status: {payload}")
            return False

        payment_status = PAYMENT_OUTCOMES.get(str(outcome).upper())
        if payment_status is None:
            logger.info(f"Ignoring payment outcome {outcome} for order {order_id}")
            return False

        try:
            await self.service.update_status(int(order_id), payment_status=payment_status)
        except (ShopError, TypeError, ValueError) as e:
            if getattr(e, "retryable", False):
                raise
            logger.warning(f"Payment event for order {order_id} not applied: {e}")
            return False

        await self.cache.invalidate_order(int(order_id))
        logger.info(f"Order {order_id} payment status set to {payment_status.value}")
        return True
