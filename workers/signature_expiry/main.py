"""Worker expiring OTP signatures whose verification window has elapsed."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from assemblyvote.api.deps import get_notification_gateway
from assemblyvote.core.config import get_settings
from assemblyvote.db.session import SessionLocal
from assemblyvote.services.delegation import DelegationEngine
from assemblyvote.workers.observability import configure_worker, worker_span

LOGGER = logging.getLogger(__name__)


async def run_once(engine: DelegationEngine) -> int:
    """Execute a single expiry sweep."""

    with worker_span("signature_expiry.sweep") as span:
        expired = await asyncio.to_thread(engine.expire_lapsed, datetime.now(tz=UTC))
        span.set_attribute("signatures.expired", expired)
        if expired:
            LOGGER.info("signature expiry sweep complete", extra={"expired": expired})
        return expired


async def run() -> None:
    """Sweep pending signatures at the configured cadence."""

    settings = get_settings()
    configure_worker("signature-expiry-worker")
    interval = max(5, settings.signature_expiry_interval_seconds)
    LOGGER.info("starting signature expiry worker", extra={"interval_seconds": interval})
    while True:
        with SessionLocal() as session:
            engine = DelegationEngine(session, gateway=get_notification_gateway(), settings=settings)
            await run_once(engine)
        await asyncio.sleep(interval)


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("signature expiry worker stopped")


if __name__ == "__main__":
    main()
