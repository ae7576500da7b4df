from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.api.deps import require_customer_or_admin
from shopfront.core.models import AddressCreate, AddressResponse, AddressUpdate
from shopfront.data.addresses import AddressStore
from shopfront.data.database import get_db
from shopfront.data.models import User

router = APIRouter(prefix="/api/addresses", tags=["addresses"])

addresses = AddressStore()

@router.get("/", response_model=List[AddressResponse])
async def list_addresses(
    user: User = Depends(require_customer_or_admin),
    db: AsyncSession = Depends(get_db),
):
    return await addresses.list_for(db, user.id)

@router.post("/", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_address(
    address_in: AddressCreate,
    user: User = Depends(require_customer_or_admin),
    db: AsyncSession = Depends(get_db),
):
    address = await addresses.create(db, user.id, address_in)
    await db.commit()
    return address

@router.put("/{address_id}", response_model=AddressResponse)
async def update_address(
    address_id: int,
    changes: AddressUpdate,
    user: User = Depends(require_customer_or_admin),
    db: AsyncSession = Depends(get_db),
):
    address = await addresses.update(db, address_id, user.id, changes)
    await db.commit()
    return address

@router.delete("/{address_id}", response_model=AddressResponse)
async def delete_address(
    address_id: int,
    user: User = Depends(require_customer_or_admin),
    db: AsyncSession = Depends(get_db),
):
    address = await addresses.delete(db, address_id, user.id)
    await db.commit()
    return address
