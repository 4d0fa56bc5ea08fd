"""Per-issue cost tracking."""

from __future__ import annotations

from jack_sdk.client import JackClient
from jack_sdk.types import CostsResponse, IssueCost

COSTS_PATH = "/api/costs"


class CostTracker:
    """Read access to the cost ledger exposed at ``/api/costs``."""

    def __init__(self, client: JackClient) -> None:
        self._client = client

    async def get_costs(self) -> CostsResponse:
        data = await self._client.get(COSTS_PATH)
        return CostsResponse(**data)

    async def get_issue_cost(self, issue_id: str) -> IssueCost | None:
        """Cost entry for ``issue_id``, or ``None`` if it has none."""
        response = await self.get_costs()
        return next((c for c in response.issue_costs if c.issue_id == issue_id), None)

    async def get_over_budget_issues(self) -> list[IssueCost]:
        response = await self.get_costs()
        return [c for c in response.issue_costs if c.over_budget]
