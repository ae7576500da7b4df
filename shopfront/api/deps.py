from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.core.config import Settings
from shopfront.core.errors import Forbidden, Unauthorized
from shopfront.core.security import decode_access_token
from shopfront.data.database import get_db
from shopfront.data.models import Role, User
from shopfront.services.orders import OrderService

bearer = HTTPBearer(auto_error=False)

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise Unauthorized("No token provided")
    payload = decode_access_token(settings, credentials.credentials)
    try:
        user_id = int(payload["sub"])
    except ValueError:
        raise Unauthorized("Invalid token")

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthorized("Invalid token")
    return user

def require_customer_or_admin(user: User = Depends(get_current_user)) -> User:
    if user.role not in (Role.CUSTOMER.value, Role.ADMIN.value):
        raise Forbidden("Customer or admin privileges required")
    return user

def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN.value:
        raise Forbidden("Admin privileges required")
    return user

def is_admin(user: User) -> bool:
    return user.role == Role.ADMIN.value
