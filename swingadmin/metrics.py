"""Aggregate metrics displayed on the dashboard and data pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Tuple

import anyio

from .models import ANALYSES_TABLE, PROFILES_TABLE
from .storage import StorageError, SupabaseStorage

logger = logging.getLogger("myswing.admin.metrics")

CONSENT_COLUMN = "marketing_consent"


@dataclass(frozen=True)
class MetricCard:
    label: str
    value: str
    delta: Optional[float] = None
    hint: Optional[str] = None

    @property
    def trend(self) -> str:
        if self.delta is None:
            return "flat"
        if self.delta > 0:
            return "up"
        if self.delta < 0:
            return "down"
        return "flat"


@dataclass(frozen=True)
class DashboardMetrics:
    cards: List[MetricCard]
    consent_rate: float
    window_days: int
    generated_at: datetime
    failed_queries: Tuple[str, ...] = ()


def percentage_delta(current: int, previous: int) -> Optional[float]:
    """Relative change from ``previous`` to ``current`` in percent, one decimal."""
    if previous == 0:
        return None
    return round((current - previous) / previous * 100, 1)


def consent_rate(consenting: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(consenting / total * 100, 1)


def format_delta(delta: Optional[float]) -> str:
    if delta is None:
        return "n/a"
    return f"{delta:+.1f}%"


def _window(column: str, start: datetime, end: datetime) -> Dict[str, str]:
    return {
        "and": (
            f'({column}.gte."{start.isoformat(timespec="seconds")}",'
            f'{column}.lt."{end.isoformat(timespec="seconds")}")'
        )
    }


def build_count_queries(
    now: datetime, window_days: int
) -> Dict[str, Tuple[str, Optional[Mapping[str, str]]]]:
    window = timedelta(days=window_days)
    current_start = now - window
    previous_start = now - 2 * window
    return {
        "signups_current": (PROFILES_TABLE, _window("created_at", current_start, now)),
        "signups_previous": (
            PROFILES_TABLE,
            _window("created_at", previous_start, current_start),
        ),
        "analyses_current": (ANALYSES_TABLE, _window("created_at", current_start, now)),
        "analyses_previous": (
            ANALYSES_TABLE,
            _window("created_at", previous_start, current_start),
        ),
        "profiles_total": (PROFILES_TABLE, None),
        "profiles_consenting": (PROFILES_TABLE, {CONSENT_COLUMN: "is.true"}),
    }


async def collect_dashboard_metrics(
    storage: SupabaseStorage,
    now: datetime,
    *,
    window_days: int = 30,
) -> DashboardMetrics:
    """Run the independent count queries in parallel; a failed query counts as zero."""
    queries = build_count_queries(now, window_days)
    counts: Dict[str, int] = {}
    failed: List[str] = []

    async def run(name: str, table: str, filters: Optional[Mapping[str, str]]) -> None:
        try:
            counts[name] = await storage.count(table, filters)
        except StorageError as exc:
            logger.warning("Metric query %s failed, using 0: %s", name, exc)
            counts[name] = 0
            failed.append(name)

    async with anyio.create_task_group() as task_group:
        for name, (table, filters) in queries.items():
            task_group.start_soon(run, name, table, filters)

    rate = consent_rate(counts["profiles_consenting"], counts["profiles_total"])
    cards = [
        MetricCard(
            label=f"Signups ({window_days} days)",
            value=str(counts["signups_current"]),
            delta=percentage_delta(counts["signups_current"], counts["signups_previous"]),
            hint=f"{counts['signups_previous']} in the previous period",
        ),
        MetricCard(
            label=f"Swing analyses ({window_days} days)",
            value=str(counts["analyses_current"]),
            delta=percentage_delta(counts["analyses_current"], counts["analyses_previous"]),
            hint=f"{counts['analyses_previous']} in the previous period",
        ),
        MetricCard(
            label="Registered players",
            value=str(counts["profiles_total"]),
        ),
        MetricCard(
            label="Marketing consent",
            value=f"{rate:.1f}%",
            hint=f"{counts['profiles_consenting']} consenting players",
        ),
    ]
    return DashboardMetrics(
        cards=cards,
        consent_rate=rate,
        window_days=window_days,
        generated_at=now,
        failed_queries=tuple(sorted(failed)),
    )


__all__ = [
    "DashboardMetrics",
    "MetricCard",
    "build_count_queries",
    "collect_dashboard_metrics",
    "consent_rate",
    "format_delta",
    "percentage_delta",
]
