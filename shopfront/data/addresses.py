from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.core.errors import Conflict, NotFound, ValidationError
from shopfront.core.models import AddressCreate, AddressUpdate
from shopfront.data.models import Address, Order

_ADDRESS_COLUMNS = {
    "address": Address.address,
    "phone": Address.phone,
    "city": Address.city,
    "is_default": Address.is_default,
}

class AddressStore:
    """Customer delivery addresses. Every lookup is scoped to the owning user."""

    async def get_owned(self, session: AsyncSession, address_id: int, user_id: int) -> Optional[Address]:
        stmt = select(Address).where(Address.id == address_id, Address.user_id == user_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def require_owned(self, session: AsyncSession, address_id: int, user_id: int) -> Address:
        address = await self.get_owned(session, address_id, user_id)
        if address is None:
            raise NotFound("address", address_id)
        return address

    async def list_for(self, session: AsyncSession, user_id: int) -> List[Address]:
        stmt = (
            select(Address)
            .where(Address.user_id == user_id)
            .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        )
        return list((await session.execute(stmt)).scalars())

    async def create(self, session: AsyncSession, user_id: int, data: AddressCreate) -> Address:
        if data.is_default:
            await self._clear_default(session, user_id)
        address = Address(user_id=user_id, **data.model_dump())
        session.add(address)
        await session.flush()
        return address

    async def update(self, session: AsyncSession, address_id: int, user_id: int, data: AddressUpdate) -> Address:
        await self.require_owned(session, address_id, user_id)

        values = {
            _ADDRESS_COLUMNS[field]: value
            for field, value in data.model_dump(exclude_none=True).items()
        }
        if not values:
            raise ValidationError("At least one field must be provided for update")
        if values.get(Address.is_default):
            await self._clear_default(session, user_id)

        await session.execute(
            update(Address)
            .where(Address.id == address_id, Address.user_id == user_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        return await session.get(Address, address_id, populate_existing=True)

    async def delete(self, session: AsyncSession, address_id: int, user_id: int) -> Address:
        address = await self.require_owned(session, address_id, user_id)
        in_use = await session.scalar(select(Order.id).where(Order.address_id == address_id).limit(1))
        if in_use is not None:
            raise Conflict("Address is used by an existing order and cannot be deleted")
        await session.delete(address)
        await session.flush()
        return address

    async def _clear_default(self, session: AsyncSession, user_id: int):
        await session.execute(
            update(Address)
            .where(Address.user_id == user_id, Address.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
