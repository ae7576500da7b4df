import logging
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.core.errors import NotFound, ValidationError
from shopfront.core.models import RatingCount, ReviewCreate, ReviewStats, ReviewUpdate
from shopfront.data.models import Review

logger = logging.getLogger(__name__)

_REVIEW_COLUMNS = {
    "name": Review.name,
    "review": Review.review,
    "rating": Review.rating,
}

class ReviewStore:
    """Public storefront reviews. Anyone may post; only admins edit or remove."""

    async def get(self, session: AsyncSession, review_id: int) -> Review:
        review = await session.get(Review, review_id)
        if review is None:
            raise NotFound("review", review_id)
        return review

    async def list_reviews(self, session: AsyncSession, page: int = 1, limit: int = 10) -> Tuple[List[Review], int]:
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive integers")
        stmt = (
            select(Review)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        reviews = list((await session.execute(stmt)).scalars())
        total = await session.scalar(select(func.count(Review.id)))
        return reviews, total or 0

    async def create(self, session: AsyncSession, data: ReviewCreate) -> Review:
        review = Review(**data.model_dump())
        session.add(review)
        await session.flush()
        logger.info(f"Created review {review.id} ({review.rating} stars)")
        return review

    async def update(self, session: AsyncSession, review_id: int, data: ReviewUpdate) -> Review:
        values = {
            _REVIEW_COLUMNS[field]: value
            for field, value in data.model_dump(exclude_none=True).items()
        }
        if not values:
            raise ValidationError("At least one field must be provided for update")

        result = await session.execute(
            update(Review)
            .where(Review.id == review_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("review", review_id)
        return await session.get(Review, review_id, populate_existing=True)

    async def delete(self, session: AsyncSession, review_id: int) -> Review:
        review = await self.get(session, review_id)
        await session.delete(review)
        await session.flush()
        return review

    async def stats(self, session: AsyncSession) -> ReviewStats:
        total = await session.scalar(select(func.count(Review.id))) or 0
        average = await session.scalar(select(func.avg(Review.rating)))
        distribution = await session.execute(
            select(Review.rating, func.count(Review.id))
            .group_by(Review.rating)
            .order_by(Review.rating.desc())
        )
        return ReviewStats(
            total_reviews=total,
            average_rating=Decimal(str(average or 0)).quantize(Decimal("0.1")),
            rating_distribution=[
                RatingCount(rating=Decimal(str(rating)), count=count) for rating, count in distribution
            ],
        )
