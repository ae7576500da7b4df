from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.api.deps import require_admin
from shopfront.core.models import Pagination, ReviewCreate, ReviewPage, ReviewResponse, ReviewStats, ReviewUpdate
from shopfront.data.database import get_db
from shopfront.data.reviews import ReviewStore

router = APIRouter(prefix="/api/reviews", tags=["reviews"])

reviews = ReviewStore()

@router.get("/stats/summary", response_model=ReviewStats, dependencies=[Depends(require_admin)])
async def review_stats(db: AsyncSession = Depends(get_db)):
    return await reviews.stats(db)

@router.get("/", response_model=ReviewPage)
async def list_reviews(page: int = Query(1), limit: int = Query(10), db: AsyncSession = Depends(get_db)):
    items, total = await reviews.list_reviews(db, page=page, limit=limit)
    return ReviewPage(
        reviews=[ReviewResponse.model_validate(r) for r in items],
        pagination=Pagination.build(page, limit, total),
    )

@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(review_in: ReviewCreate, db: AsyncSession = Depends(get_db)):
    review = await reviews.create(db, review_in)
    await db.commit()
    return review

@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(review_id: int, db: AsyncSession = Depends(get_db)):
    return await reviews.get(db, review_id)

@router.put("/{review_id}", response_model=ReviewResponse, dependencies=[Depends(require_admin)])
async def update_review(review_id: int, changes: ReviewUpdate, db: AsyncSession = Depends(get_db)):
    review = await reviews.update(db, review_id, changes)
    await db.commit()
    return review

@router.delete("/{review_id}", response_model=ReviewResponse, dependencies=[Depends(require_admin)])
async def delete_review(review_id: int, db: AsyncSession = Depends(get_db)):
    review = await reviews.delete(db, review_id)
    await db.commit()
    return review
