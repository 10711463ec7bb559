"""
Usage ledger
Append-only log of completed transcriptions plus the client rating
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import and_, case, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transcribe_api.exceptions import LedgerFailure
from transcribe_api.models import UsageLog
from transcribe_api.schemas.usage import (
    DuplicateGroup,
    DurationStats,
    FileSizeStats,
    ModelUsage,
    RatingSummary,
    UsageReport,
)

VALID_RATINGS = (1, -1)


class UsageService:
    """Usage ledger service"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, file_size_bytes: int, model_used: str, duration_ms: int) -> Optional[int]:
        """
        Insert one usage row

        Never raises: a ledger failure must not fail the request it describes.

        Returns:
            The new record id, or None if the insert failed
        """
        try:
            async with self.session_factory() as db:
                usage = UsageLog(
                    file_size_bytes=file_size_bytes,
                    model_used=model_used,
                    duration_ms=duration_ms,
                )
                db.add(usage)
                await db.commit()
                await db.refresh(usage)
        except SQLAlchemyError as e:
            logger.error(f"Error logging usage to database: {e}")
            return None

        logger.info(
            f"Usage recorded: id={usage.id}, model={model_used}, "
            f"size={file_size_bytes}, duration={duration_ms}ms"
        )
        return usage.id

    async def save_rating(self, usage_id: int, rating: int) -> bool:
        """
        Attach a +1/-1 quality signal to an existing record

        Returns:
            False for an invalid rating or an unknown id (nothing is written)

        Raises:
            LedgerFailure: the store could not be updated
        """
        if isinstance(rating, bool) or rating not in VALID_RATINGS:
            return False

        try:
            async with self.session_factory() as db:
                usage = await db.get(UsageLog, usage_id)
                if usage is None:
                    logger.warning(f"Rating for unknown usage id: {usage_id}")
                    return False
                usage.rating = rating
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error saving rating: id={usage_id}, error={e}")
            raise LedgerFailure(str(e)) from e

        logger.info(f"Rating saved: id={usage_id}, rating={rating}")
        return True

    async def ping(self) -> bool:
        """Database reachability for the health check"""
        try:
            async with self.session_factory() as db:
                await db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False
        return True

    async def get(self, usage_id: int) -> Optional[UsageLog]:
        async with self.session_factory() as db:
            return await db.get(UsageLog, usage_id)

    async def count_since(self, since: datetime) -> int:
        async with self.session_factory() as db:
            count = await db.scalar(
                select(func.count()).select_from(UsageLog).where(UsageLog.timestamp >= since)
            )
        return count or 0

    async def monthly_upload_count(self) -> int:
        """Uploads over the past 30 days"""
        since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=30)
        return await self.count_since(since)

    async def usage_report(self) -> UsageReport:
        """Aggregate statistics over the whole ledger"""
        has_duration = and_(UsageLog.duration_ms.is_not(None), UsageLog.duration_ms > 0)

        async with self.session_factory() as db:
            total = await db.scalar(select(func.count()).select_from(UsageLog)) or 0

            size_row = (
                await db.execute(
                    select(
                        func.max(UsageLog.file_size_bytes),
                        func.min(UsageLog.file_size_bytes),
                        func.avg(UsageLog.file_size_bytes),
                        func.sum(UsageLog.file_size_bytes),
                    ).where(UsageLog.file_size_bytes.is_not(None))
                )
            ).one()

            duration_row = (
                await db.execute(
                    select(
                        func.count(),
                        func.max(UsageLog.duration_ms),
                        func.min(UsageLog.duration_ms),
                        func.avg(UsageLog.duration_ms),
                        func.sum(UsageLog.duration_ms),
                    ).where(has_duration)
                )
            ).one()

            duplicate_count = func.count().label("count")
            duplicate_rows = (
                await db.execute(
                    select(UsageLog.file_size_bytes, UsageLog.duration_ms, duplicate_count)
                    .where(has_duration, UsageLog.file_size_bytes.is_not(None))
                    .group_by(UsageLog.file_size_bytes, UsageLog.duration_ms)
                    .having(func.count() > 1)
                    .order_by(duplicate_count.desc())
                )
            ).all()

            model_count = func.count().label("count")
            model_rows = (
                await db.execute(
                    select(
                        UsageLog.model_used,
                        model_count,
                        func.avg(UsageLog.file_size_bytes),
                        func.avg(case((UsageLog.duration_ms > 0, UsageLog.duration_ms))),
                    )
                    .where(UsageLog.model_used.is_not(None))
                    .group_by(UsageLog.model_used)
                    .order_by(model_count.desc())
                )
            ).all()

            rating_row = (
                await db.execute(
                    select(
                        func.count(case((UsageLog.rating == 1, 1))),
                        func.count(case((UsageLog.rating == -1, 1))),
                        func.count(case((UsageLog.rating.is_(None), 1))),
                    )
                )
            ).one()

        return UsageReport(
            total_records=total,
            file_size=FileSizeStats(
                max_size=size_row[0],
                min_size=size_row[1],
                avg_size=size_row[2],
                total_size=size_row[3],
            ),
            duration=DurationStats(
                valid_count=duration_row[0] or 0,
                max_duration=duration_row[1],
                min_duration=duration_row[2],
                avg_duration=duration_row[3],
                total_duration=duration_row[4],
            ),
            duplicates=[
                DuplicateGroup(file_size_bytes=row[0], duration_ms=row[1], count=row[2])
                for row in duplicate_rows
            ],
            models=[
                ModelUsage(model_used=row[0], count=row[1], avg_size=row[2], avg_duration=row[3])
                for row in model_rows
            ],
            ratings=RatingSummary(
                thumbs_up=rating_row[0] or 0,
                thumbs_down=rating_row[1] or 0,
                unrated=rating_row[2] or 0,
            ),
        )


def format_bytes(num_bytes: float) -> str:
    """Human readable size, e.g. '1.5 MB'"""
    if not num_bytes:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def format_duration(ms: float) -> str:
    """Human readable duration, e.g. '1.50s' or '2.00min'"""
    if ms < 1000:
        return f"{round(ms)}ms"
    if ms < 60000:
        return f"{ms / 1000:.2f}s"
    return f"{ms / 60000:.2f}min"
