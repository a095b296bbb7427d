"""
Sync Jobs Example

This example reads every job of one integration and reports what happened
to its health along the way:
1. Share one Collaborators across adapters
2. Build the adapter for the integration's provider
3. Stream batches and inspect the recorded health state

Credentials come from the environment:

    ATS_PROVIDER=icims ICIMS_CUSTOMER_ID=1234 ICIMS_USERNAME=... ICIMS_PASSWORD=...
    ATS_PROVIDER=greenhouse GREENHOUSE_API_KEY=...
    ATS_PROVIDER=workday WORKDAY_TENANT=acme WORKDAY_HOST=wd5-impl-services1.workday \\
        WORKDAY_USERNAME=... WORKDAY_PASSWORD=...

Run: python -m examples.01-sync-jobs.main
"""

import asyncio
import logging
import os

from atsbridge import Collaborators, Integration, IntegrationError, build_adapter
from atsbridge.health import InMemoryHealthRecorder
from atsbridge.observability import InMemoryNotificationSink


def credentials_from_env(provider: str) -> dict[str, str]:
    if provider == "greenhouse":
        return {"api_key": os.getenv("GREENHOUSE_API_KEY", "")}
    if provider == "icims":
        return {
            "customer_id": os.getenv("ICIMS_CUSTOMER_ID", ""),
            "username": os.getenv("ICIMS_USERNAME", ""),
            "password": os.getenv("ICIMS_PASSWORD", ""),
        }
    return {
        "base_url": os.getenv("WORKDAY_HOST", ""),
        "external_organization_id": os.getenv("WORKDAY_TENANT", ""),
        "username": os.getenv("WORKDAY_USERNAME", ""),
        "password": os.getenv("WORKDAY_PASSWORD", ""),
    }


async def main() -> None:
    logging.basicConfig(level=logging.INFO)

    provider = os.getenv("ATS_PROVIDER", "greenhouse")
    integration = Integration(
        id="example-1",
        provider_type=provider,
        credentials=credentials_from_env(provider),
    )

    recorder = InMemoryHealthRecorder()
    notifications = InMemoryNotificationSink()
    collaborators = Collaborators(health_recorder=recorder, notifications=notifications)

    total = 0
    async with build_adapter(integration, collaborators=collaborators) as ats:
        try:
            async for batch in ats.iter_jobs():
                total += len(batch)
                print(f"Fetched {len(batch)} jobs ({total} so far)")
        except IntegrationError as e:
            print(f"Sync stopped: {e}")

    print(f"\nTotal jobs: {total}")
    print(f"Health: {integration.health_state}")
    for kind, context in notifications.sent:
        print(f"Notification: {kind.value} {context}")


if __name__ == "__main__":
    asyncio.run(main())
