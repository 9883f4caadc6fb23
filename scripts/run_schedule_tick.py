"""Fire due time_based workflows: call the schedule tick hook for each tenant.

Usage:
    uv run python -m scripts.run_schedule_tick tenant_a [tenant_b ...]
Run once per minute from cron. The API base URL comes from
AUTOMATION_API_URL (default http://localhost:8000/api/v1).
"""

import asyncio
import os
import sys

import httpx

from app.core.config import get_settings
from app.shared.utils.datetime import utc_now


async def main() -> None:
    """POST /events/schedule-tick for every tenant given on the command line."""
    tenant_ids = sys.argv[1:]
    if not tenant_ids:
        print("Usage: python -m scripts.run_schedule_tick TENANT_ID [TENANT_ID ...]", file=sys.stderr)
        sys.exit(1)
    settings = get_settings()
    base_url = os.environ.get("AUTOMATION_API_URL", "http://localhost:8000/api/v1")
    now = utc_now().replace(second=0, microsecond=0)

    failures = 0
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        for tenant_id in tenant_ids:
            try:
                response = await client.post(
                    "/events/schedule-tick",
                    params={"now": now.isoformat()},
                    headers={settings.tenant_header_name: tenant_id},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                failures += 1
                print(f"Tenant {tenant_id}: tick failed: {e}", file=sys.stderr)
                continue
            data = response.json()
            print(
                f"Tenant {tenant_id}: {len(data['matched_workflow_ids'])} due, "
                f"{len(data['executions'])} started, {len(data['rejected'])} rejected"
            )

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
