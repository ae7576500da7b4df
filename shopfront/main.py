from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from shopfront.api import addresses, auth, products, reviews
from shopfront.api.routes import router
from shopfront.caching.redis_client import RedisClient
from shopfront.core.config import Settings, settings as default_settings
from shopfront.core.errors import ShopError, STATUS_BY_KIND, ErrorKind, TITLE_BY_KIND
from shopfront.data.database import Database
from shopfront.messaging.consumer import PaymentEventConsumer
from shopfront.messaging.producer import OrderEventProducer
from shopfront.services.orders import OrderService
import logging

logger = logging.getLogger(__name__)

def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    producer: OrderEventProducer | None = None,
    cache: RedisClient | None = None,
    consumer: PaymentEventConsumer | None = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(level=settings.LOG_LEVEL)

    database = database or Database(settings.DATABASE_URL, echo=settings.DB_ECHO)
    order_service = OrderService(
        database, transaction_timeout=settings.ORDER_TRANSACTION_TIMEOUT_SECONDS
    )
    producer = producer or OrderEventProducer(settings)
    cache = cache or RedisClient(settings)
    consumer = consumer or PaymentEventConsumer(settings, order_service, cache)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting up...")

        # Create DB tables
        await database.create_all()

        await producer.connect()
        await consumer.connect() # Starts background consuming task
        await cache.connect()

        yield

        # Shutdown
        logger.info("Shutting down...")
        await consumer.close()
        await producer.close()
        await cache.close()
        await database.dispose()

    app = FastAPI(title="Shopfront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.order_service = order_service
    app.state.producer = producer
    app.state.cache = cache
    app.state.consumer = consumer

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        if exc.retryable:
            logger.warning(f"{request.method} {request.url.path} failed, retryable: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
        return JSONResponse(
            status_code=STATUS_BY_KIND[ErrorKind.VALIDATION],
            content={"error": TITLE_BY_KIND[ErrorKind.VALIDATION], "message": "; ".join(messages)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Server error", "message": "An unexpected error occurred"},
        )

    app.include_router(auth.router)
    app.include_router(products.router)
    app.include_router(addresses.router)
    app.include_router(reviews.router)
    app.include_router(router)

    @app.get("/")
    async def root():
        return {
            "message": "Shopfront API is running",
            "endpoints": {
                "auth": "/api/auth",
                "products": "/api/products",
                "addresses": "/api/addresses",
                "reviews": "/api/reviews",
                "orders": "/api/orders",
            },
        }

    return app

app = create_app()
