"""
Pydantic schemas for session management.
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SessionResponse(BaseModel):
    """A session as shown to its owner (the bound token is never exposed)."""
    id: int
    user_id: int
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    last_active_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime
    is_active: bool

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    pagination: Pagination


class SessionStats(BaseModel):
    total_sessions: int
    active_sessions: int
    revoked_sessions: int
    unique_devices: int
    unique_ip_addresses: int
    last_activity: Optional[datetime] = None


class BulkRevokeError(BaseModel):
    session_id: int
    error: str


class BulkRevokeResult(BaseModel):
    success: int = 0
    failed: int = 0
    errors: List[BulkRevokeError] = Field(default_factory=list)


class BulkRevokeRequest(BaseModel):
    session_ids: List[int] = Field(..., min_length=1, max_length=100)


class RevokeCountResponse(BaseModel):
    revoked: int


class PurgeResponse(BaseModel):
    deleted: int
    retention_days: int


class SecurityAlertType(str, enum.Enum):
    NEW_DEVICE = "NEW_DEVICE"
    NEW_LOCATION = "NEW_LOCATION"
    CONCURRENT_SESSIONS = "CONCURRENT_SESSIONS"


class SecurityAlert(BaseModel):
    type: SecurityAlertType
    user_id: int
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
