import logging
from contextlib import asynccontextmanager
from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.api.deps import get_current_user, get_settings
from shopfront.core.config import Settings
from shopfront.core.errors import Conflict, Unauthorized, ValidationError
from shopfront.core.models import TokenResponse, UserLogin, UserRegister, UserResponse, UserUpdate
from shopfront.core.security import create_access_token, hash_password, verify_password
from shopfront.data.database import get_db
from shopfront.data.models import Role, User, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_USER_COLUMNS = {
    "username": User.username,
    "email": User.email,
}

@asynccontextmanager
async def unique_user_write(db: AsyncSession):
    """Commits the block's writes, turning a username or email collision into Conflict."""
    try:
        yield
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"User write rejected by unique constraint: {e.orig}")
        raise Conflict("Username or email already registered")

def _token_response(settings: Settings, user: User) -> TokenResponse:
    return TokenResponse(
        token=create_access_token(settings, user.id, user.role),
        user=UserResponse.model_validate(user),
    )

@router.post("/customer/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register_customer(
    user_in: UserRegister,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    existing = await db.execute(
        select(User.id).where(or_(User.username == user_in.username, User.email == user_in.email))
    )
    if existing.first() is not None:
        raise Conflict("Username or email already registered")

    user = User(
        username=user_in.username,
        email=user_in.email,
        password=hash_password(user_in.password),
        role=Role.CUSTOMER.value,
    )
    async with unique_user_write(db):
        db.add(user)
    logger.info(f"Registered customer {user.id}")
    return _token_response(settings, user)

@router.post("/customer/login", response_model=TokenResponse)
async def login_customer(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = await db.execute(
        select(User).where(
            or_(User.username == credentials.username, User.email == credentials.username),
            User.role == Role.CUSTOMER.value,
        )
    )
    user = result.scalars().first()
    if user is None or not verify_password(credentials.password, user.password):
        raise Unauthorized("Invalid credentials")
    return _token_response(settings, user)

@router.post("/admin/login", response_model=TokenResponse)
async def login_admin(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if not settings.ADMIN_USERNAME or not settings.ADMIN_PASSWORD:
        logger.error("Admin credentials are not configured")
        raise RuntimeError("Admin credentials are not configured")

    if credentials.username != settings.ADMIN_USERNAME or credentials.password != settings.ADMIN_PASSWORD:
        raise Unauthorized("Invalid admin credentials")

    result = await db.execute(
        select(User).where(User.username == credentials.username, User.role == Role.ADMIN.value)
    )
    admin = result.scalars().first()
    if admin is None:
        admin = User(
            username=credentials.username,
            email=f"{credentials.username}@admin.local",
            password=hash_password(credentials.password),
            role=Role.ADMIN.value,
        )
        db.add(admin)
        await db.commit()
        logger.info(f"Created admin user {admin.id}")

    return _token_response(settings, admin)

@router.get("/profile", response_model=UserResponse)
async def profile(user: User = Depends(get_current_user)):
    return user

@router.put("/profile", response_model=UserResponse)
async def update_profile(
    changes: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    values = {
        _USER_COLUMNS[field]: value
        for field, value in changes.model_dump(exclude_none=True).items()
    }
    if not values:
        raise ValidationError("At least one field must be provided for update")

    clashes = [column == value for column, value in values.items()]
    taken = await db.execute(select(User.id).where(or_(*clashes), User.id != user.id))
    if taken.first() is not None:
        raise Conflict("Username or email already registered")

    values[User.updated_at] = utcnow()
    async with unique_user_write(db):
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        updated = UserResponse.model_validate(await db.get(User, user.id, populate_existing=True))
    logger.info(f"Updated profile of user {user.id}")
    return updated

@router.post("/logout")
async def logout(user: User = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy.
    return {"message": "Logout successful. Please remove the token from client storage."}
