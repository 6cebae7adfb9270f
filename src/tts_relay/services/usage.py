"""
Usage accounting per subject.

Every cache miss is billed: characters sent to the provider, one request,
and its exact cost. Records are bucketed by (subject, local calendar day)
and aggregated over a period window on query:

    day    today 00:00 -> tomorrow 00:00
    week   most recent Sunday 00:00 -> +7 days
    month  1st of this month 00:00 -> 1st of next month

Unknown period names fall back to month. The in-memory tracker is reset
on restart.

Example:
    tracker = InMemoryUsageTracker(CostModel())
    tracker.record("user-42", 11, "female")
    tracker.query("user-42", "day").total_characters   # 11
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from tts_relay.core.config import Defaults
from tts_relay.core.logging import debug, get_logger
from tts_relay.tts.pricing import CostModel

_LOG = get_logger("tts-relay.usage")

ANONYMOUS_SUBJECT = "anonymous"
PERIODS = ("day", "week", "month")


@dataclass(frozen=True)
class UsageSummary:
    """Aggregated usage of one subject over a period window."""
    subject: str
    period: str
    start: datetime
    end: datetime
    total_characters: int
    total_requests: int
    total_cost_usd: float
    remaining_quota: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCharacters": self.total_characters,
            "totalRequests": self.total_requests,
            "totalCostUSD": self.total_cost_usd,
            "period": self.period,
            "startDate": self.start.isoformat(),
            "endDate": self.end.isoformat(),
            "remainingQuota": self.remaining_quota,
        }


def period_window(period: str, now: Optional[datetime] = None) -> Tuple[str, datetime, datetime]:
    """
    Resolve a period name to (period, start, end) in local time.

    Unknown names resolve to "month".
    """
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "day":
        return period, midnight, midnight + timedelta(days=1)

    if period == "week":
        # weekday(): Monday=0 .. Sunday=6
        start = midnight - timedelta(days=(now.weekday() + 1) % 7)
        return period, start, start + timedelta(days=7)

    start = midnight.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return "month", start, end


class UsageTracker(ABC):
    """Interface for usage accounting backends."""

    @abstractmethod
    def record(
        self,
        subject: str,
        characters: int,
        voice: str,
        cost_usd: Optional[float] = None,
        when: Optional[datetime] = None,
    ) -> None:
        """
        Account one billed request.

        Args:
            subject: Accounting identity.
            characters: Characters sent to the provider.
            voice: Voice token or provider id (prices the request when
                cost_usd is omitted).
            cost_usd: Pre-computed exact cost, e.g. a blended
                conversation cost.
            when: Timestamp of the request, defaults to now.
        """

    @abstractmethod
    def query(self, subject: str, period: str = "month", now: Optional[datetime] = None) -> UsageSummary:
        """Aggregate a subject's usage over a period window."""

    @abstractmethod
    def reset(self) -> None:
        """Forget all recorded usage."""


@dataclass
class _Bucket:
    characters: int = 0
    requests: int = 0
    cost: Decimal = Decimal(0)


class InMemoryUsageTracker(UsageTracker):
    """
    Thread-safe in-process tracker.

    Args:
        cost_model: Prices records that arrive without a cost.
        free_quota_per_month: Basis of remaining_quota.
        track_anonymous: When False, records for the anonymous subject
            are dropped.
    """

    def __init__(
        self,
        cost_model: Optional[CostModel] = None,
        free_quota_per_month: int = Defaults.PRICING_FREE_QUOTA_PER_MONTH,
        track_anonymous: bool = Defaults.USAGE_TRACK_ANONYMOUS,
    ):
        self._cost_model = cost_model or CostModel()
        self._free_quota = free_quota_per_month
        self._track_anonymous = track_anonymous
        self._buckets: Dict[Tuple[str, date], _Bucket] = {}
        self._lock = threading.Lock()

    def record(
        self,
        subject: str,
        characters: int,
        voice: str,
        cost_usd: Optional[float] = None,
        when: Optional[datetime] = None,
    ) -> None:
        subject = subject or ANONYMOUS_SUBJECT
        if subject == ANONYMOUS_SUBJECT and not self._track_anonymous:
            return

        if cost_usd is None:
            cost = self._cost_model.cost_decimal(characters, voice)
        else:
            cost = Decimal(str(cost_usd))
        day = (when or datetime.now()).date()

        with self._lock:
            bucket = self._buckets.setdefault((subject, day), _Bucket())
            bucket.characters += characters
            bucket.requests += 1
            bucket.cost += cost

        debug(_LOG, "usage_recorded", subject=subject, chars=characters, voice=voice)

    def query(self, subject: str, period: str = "month", now: Optional[datetime] = None) -> UsageSummary:
        subject = subject or ANONYMOUS_SUBJECT
        period, start, end = period_window(period, now)

        characters = 0
        requests = 0
        cost = Decimal(0)
        with self._lock:
            for (bucket_subject, day), bucket in self._buckets.items():
                if bucket_subject != subject:
                    continue
                day_start = datetime.combine(day, datetime.min.time())
                if start <= day_start < end:
                    characters += bucket.characters
                    requests += bucket.requests
                    cost += bucket.cost

        return UsageSummary(
            subject=subject,
            period=period,
            start=start,
            end=end,
            total_characters=characters,
            total_requests=requests,
            total_cost_usd=float(cost),
            remaining_quota=max(0, self._free_quota - characters),
        )

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
