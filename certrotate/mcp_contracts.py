# certrotate/mcp_contracts.py
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field


class ExpiryReport(BaseModel):
    expires_at: str = Field(..., examples=["2026-12-01T00:00:00Z"])
    days_remaining: int
    tier: str = Field(..., examples=["SAFE", "WARNING", "CRITICAL"])


class PairReport(BaseModel):
    cert_path: str
    key_path: str
    matches: bool
    certificate_digest: str
    key_digest: str


class ServiceReport(BaseModel):
    service: str
    cert_path: str
    key_path: str
    present: bool
    matches: Optional[bool] = None
    expiry: Optional[ExpiryReport] = None
