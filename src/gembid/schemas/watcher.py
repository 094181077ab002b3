"""Watcher schemas for subscription requests and responses."""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, field_validator

from gembid.schemas.base import CamelModel


class WatcherCreate(CamelModel):
    """Schema for subscribing to an auction's alerts.

    ``user_id`` is set for signed-in shoppers so alerts reach their personal
    WebSocket channel; guests subscribe by email only.
    """

    email: EmailStr
    user_id: UUID | None = None
    notify_outbid: bool = True
    notify_ending: bool = True
    notify_result: bool = True

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class WatcherResponse(CamelModel):
    id: UUID
    auction_id: UUID
    user_id: UUID | None
    email: str
    notify_outbid: bool
    notify_ending: bool
    notify_result: bool
    created_at: datetime


class WatcherListResponse(CamelModel):
    watchers: list[WatcherResponse]
    total: int
