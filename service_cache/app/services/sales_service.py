"""
Cached sales notes and service request queries.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List

from .base import BaseCacheService
from ..store.collections import SALES_NOTES, SERVICE_REQUESTS
from ..store.document_store import DESCENDING, Document


SALES_STATS_KEY = "sales:stats"
SALES_RECENT_PATTERN = "sales:recent:*"
SERVICE_STATS_KEY = "service:stats"
SERVICE_RECENT_PATTERN = "service:recent:*"

SALES_PROBES = [(SALES_NOTES, None)]
SERVICE_PROBES = [(SERVICE_REQUESTS, None)]

STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"


def period_starts(now: datetime) -> Dict[str, datetime]:
    """Start of today, of the week (Sunday) and of the month containing ``now``."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # isoweekday: Monday=1 .. Sunday=7
    week = today - timedelta(days=today.isoweekday() % 7)
    month = today.replace(day=1)
    return {"today": today, "week": week, "month": month}


def summarize(notes: List[Document], since: datetime) -> Dict[str, float]:
    selected = [note for note in notes if note.get("date") is not None and note["date"] >= since]
    return {"count": len(selected), "amount": sum(note.get("total", 0) for note in selected)}


class SalesService(BaseCacheService):
    """Sales notes and service tickets."""

    name = "sales"

    async def get_recent_sales_notes(self, limit: int = 50) -> List[Document]:
        """Get the latest sales notes by date."""

        async def fetch() -> List[Document]:
            return await self.store.find(
                SALES_NOTES,
                sort=[("date", DESCENDING), ("created_at", DESCENDING)],
                limit=limit,
            )

        return await self.read_through(f"sales:recent:{limit}", fetch, SALES_PROBES)

    async def get_sales_stats(self) -> Dict[str, Any]:
        """Get sales totals overall and for this month, week and day."""

        async def fetch() -> Dict[str, Any]:
            notes = await self.store.find(SALES_NOTES)
            starts = period_starts(self._clock())

            total_sales = len(notes)
            total_amount = sum(note.get("total", 0) for note in notes)
            month = summarize(notes, starts["month"])
            week = summarize(notes, starts["week"])
            today = summarize(notes, starts["today"])

            return {
                "total_sales": total_sales,
                "total_amount": total_amount,
                "sales_this_month": month["count"],
                "amount_this_month": month["amount"],
                "sales_this_week": week["count"],
                "amount_this_week": week["amount"],
                "sales_today": today["count"],
                "amount_today": today["amount"],
                "average_ticket": total_amount / total_sales if total_sales > 0 else 0,
            }

        return await self.read_through(SALES_STATS_KEY, fetch, SALES_PROBES)

    async def get_service_stats(self) -> Dict[str, Any]:
        """Get service request counts by status and completed revenue."""

        async def fetch() -> Dict[str, Any]:
            requests = await self.store.find(SERVICE_REQUESTS)
            status_counts = Counter(request.get("status") for request in requests)
            completed = [request for request in requests if request.get("status") == STATUS_COMPLETED]
            total_revenue = sum(request.get("total_cost", 0) for request in completed)

            return {
                "total_requests": sum(status_counts.values()),
                "pending_requests": status_counts.get(STATUS_PENDING, 0),
                "in_progress_requests": status_counts.get(STATUS_IN_PROGRESS, 0),
                "completed_requests": status_counts.get(STATUS_COMPLETED, 0),
                "total_revenue": total_revenue,
                "average_ticket": total_revenue / len(completed) if completed else 0,
            }

        return await self.read_through(SERVICE_STATS_KEY, fetch, SERVICE_PROBES)

    async def get_recent_service_requests(self, limit: int = 20) -> List[Document]:
        """Get the newest non-archived service requests."""

        async def fetch() -> List[Document]:
            return await self.store.find(
                SERVICE_REQUESTS,
                {"is_archived": False},
                sort=[("created_at", DESCENDING)],
                limit=limit,
            )

        return await self.read_through(f"service:recent:{limit}", fetch, SERVICE_PROBES)

    async def invalidate_sales_cache(self) -> None:
        await asyncio.gather(
            self.invalidate_cache(SALES_STATS_KEY),
            self.clear_cache(SALES_RECENT_PATTERN),
        )

    async def invalidate_service_cache(self) -> None:
        await asyncio.gather(
            self.invalidate_cache(SERVICE_STATS_KEY),
            self.clear_cache(SERVICE_RECENT_PATTERN),
        )

    async def invalidate_all(self) -> None:
        await asyncio.gather(self.invalidate_sales_cache(), self.invalidate_service_cache())
