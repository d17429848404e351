# bulk_image_cleaner/models/messages.py
from __future__ import annotations

from typing import Any, List, Optional
from pydantic import BaseModel, Field


class AuthStatus(BaseModel):
    authenticated: bool
    authorizedSitesCount: int = 0
    siteIds: List[str] = Field(default_factory=list)


class SiteSummary(BaseModel):
    id: str
    displayName: Optional[str] = None
    shortName: Optional[str] = None


class SiteListResponse(BaseModel):
    sites: List[SiteSummary] = Field(default_factory=list)


class ErrorBody(BaseModel):
    message: str
    code: Optional[Any] = None
    details: Optional[Any] = None
    retryAfter: Optional[int] = None


class HealthResponse(BaseModel):
    ok: bool = True
