from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from catalyst_monitor.errors import UpstreamFetchError
from catalyst_monitor.ledger import request_json
from catalyst_monitor.utils import to_float, to_int, to_str


@dataclass(frozen=True)
class PlannedMilestone:
    """Planned month/cost of a milestone as published by the milestone tracker."""
    milestone: int
    title: str
    month: int | None
    cost: float | None


def _parse_entry(entry: dict[str, Any]) -> PlannedMilestone | None:
    idx = to_int(entry.get("milestone", entry.get("id")), default=0)
    if idx <= 0:
        return None
    month = entry.get("month")
    cost = entry.get("cost")
    return PlannedMilestone(
        milestone=idx,
        title=to_str(entry.get("title")),
        month=to_int(month) if month not in (None, "") else None,
        cost=to_float(cost) if cost not in (None, "") else None,
    )


class MilestonesClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def proposal_url(self, proposal_id: int) -> str:
        return f"{self.base_url}/proposals/{proposal_id}"

    async def fetch_plan(self, proposal_id: int) -> dict[int, PlannedMilestone]:
        """Planned milestones keyed by index. Accepts a bare list or ``{"milestones": [...]}``."""
        data = await request_json(
            "GET", f"{self.base_url}/api/milestones/{proposal_id}",
            timeout=self._timeout, transport=self._transport,
        )
        entries = data.get("milestones") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise UpstreamFetchError(
                f"Unexpected milestone payload for proposal {proposal_id}",
                endpoint=f"/api/milestones/{proposal_id}",
            )
        plan: dict[int, PlannedMilestone] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            parsed = _parse_entry(entry)
            if parsed is not None:
                plan[parsed.milestone] = parsed
        return plan
