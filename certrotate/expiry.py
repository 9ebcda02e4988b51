# certrotate/expiry.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .common import days_between, iso_utc, now_utc
from .parser import CertificateParser, CryptographyParser


class UrgencyTier(str, Enum):
    SAFE = "SAFE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class Thresholds:
    """More than ``safe_above`` days is SAFE, more than ``warning_above`` is WARNING."""

    safe_above: int
    warning_above: int

    def __post_init__(self) -> None:
        if self.warning_above > self.safe_above:
            raise ValueError("warning_above must not exceed safe_above")

    def tier(self, days_remaining: int) -> UrgencyTier:
        if days_remaining > self.safe_above:
            return UrgencyTier.SAFE
        if days_remaining > self.warning_above:
            return UrgencyTier.WARNING
        return UrgencyTier.CRITICAL


COCKPIT_THRESHOLDS = Thresholds(safe_above=60, warning_above=30)
PORTAINER_THRESHOLDS = Thresholds(safe_above=31, warning_above=7)


@dataclass(frozen=True)
class ExpiryStatus:
    expires_at: dt.datetime
    days_remaining: int
    tier: UrgencyTier

    def as_dict(self) -> dict:
        return {
            "expires_at": iso_utc(self.expires_at),
            "days_remaining": self.days_remaining,
            "tier": self.tier.value,
        }


def classify(
    certificate: bytes,
    thresholds: Thresholds,
    now: Optional[dt.datetime] = None,
    parser: Optional[CertificateParser] = None,
) -> ExpiryStatus:
    parser = parser or CryptographyParser()
    expires_at = parser.not_after(certificate)
    days = days_between(expires_at, now or now_utc())
    return ExpiryStatus(expires_at=expires_at, days_remaining=days, tier=thresholds.tier(days))
