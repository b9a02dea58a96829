"""
Audit log Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, List, Optional


class AuditLogResponse(BaseModel):
    """Schema for a single audit log entry."""
    id: str
    actor_id: str
    action: str
    entity_type: Optional[str]
    entity_id: Optional[str]
    details: Dict[str, Any]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    """Schema for a paginated audit log query."""
    logs: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
