"""
Service Layer for the order changelog
Project: Rental Order Engine
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_engine.models import OrderChangelog
from rental_engine.schemas.order import ChangeEntry, ChangeType

logger = logging.getLogger(__name__)


class ChangelogService:
    """
    Writes and reads changelog entries.

    record() only stages the row; the caller's transaction commits it.
    """

    def record(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        field_name: str,
        old_value: Optional[str],
        new_value: Optional[str],
        change_type: ChangeType = ChangeType.EDIT,
    ) -> OrderChangelog:
        entry = OrderChangelog(
            order_id=order_id,
            actor_id=actor_id,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            change_type=change_type.value,
        )
        db.add(entry)
        return entry

    def record_entries(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        entries: list[ChangeEntry],
    ) -> list[OrderChangelog]:
        return [
            self.record(db, order_id, actor_id, e.field_name, e.old_value, e.new_value, e.change_type)
            for e in entries
        ]

    async def list_for_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[OrderChangelog], int]:
        """
        Changelog of an order, newest first.

        Returns:
            Tuple of (entries, total count)
        """
        count_result = await db.execute(
            select(func.count()).select_from(OrderChangelog).where(OrderChangelog.order_id == order_id)
        )
        total = count_result.scalar_one()

        result = await db.execute(
            select(OrderChangelog)
            .where(OrderChangelog.order_id == order_id)
            .order_by(OrderChangelog.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), total
