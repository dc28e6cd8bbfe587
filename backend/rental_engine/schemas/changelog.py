"""
Pydantic schemas for the order changelog
Project: Rental Order Engine
"""

import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from rental_engine.schemas.order import ChangeType


class ChangelogEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    actor_id: Optional[uuid.UUID] = None
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    change_type: ChangeType
    created_at: datetime.datetime


class ChangelogList(BaseModel):
    items: list[ChangelogEntryRead]
    total: int
