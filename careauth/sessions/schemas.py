"""Response schemas for the device-session API."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class SessionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    device_info: dict[str, Any]
    ip_address: str | None = None
    user_agent: str | None = None
    last_activity: datetime
    created_at: datetime
    expires_at: datetime
    is_current: bool = False


class SessionListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[SessionView]


class CurrentSessionResponse(BaseModel):
    success: bool = True
    data: SessionView


class RevokedSessionResponse(BaseModel):
    success: bool = True
    message: str
    session_id: uuid.UUID


class RevokedOthersResponse(BaseModel):
    success: bool = True
    message: str
    revoked_count: int
