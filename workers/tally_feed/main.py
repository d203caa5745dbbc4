"""Worker folding the assembly change feed into live vote tallies."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from kafka import KafkaConsumer

from assemblyvote.core.errors import NotFound
from assemblyvote.db.session import SessionLocal
from assemblyvote.obs import report_queue_depth
from assemblyvote.services.attendance import quorum_cache
from assemblyvote.services.events import AssemblyEventConsumer
from assemblyvote.services.tally import LiveTally, TallyProjection
from assemblyvote.services.voting import VotingService
from assemblyvote.workers.observability import configure_worker, worker_span

logger = logging.getLogger(__name__)
QUEUE_NAME = "assembly-events"


def load_live_tally(vote_id: str) -> LiveTally:
    """Seed a projection entry from the ballots already stored."""
    with SessionLocal() as session:
        try:
            return VotingService(session).live_tally(vote_id)
        except NotFound:
            logger.warning("event for unknown vote ignored", extra={"vote_id": vote_id})
            return LiveTally(vote_id, "DELETED", [])


class TallyFeedWorker:
    """Keeps the tally projection and the quorum cache in step with the feed."""

    def __init__(
        self,
        *,
        consumer_factory: Callable[[], KafkaConsumer] | None = None,
        loader: Callable[[str], LiveTally] = load_live_tally,
    ) -> None:
        self.projection = TallyProjection(loader)
        self._consumer = AssemblyEventConsumer(
            projection=self.projection,
            consumer_factory=consumer_factory,
            on_attendance_change=quorum_cache.invalidate,
        )

    def poll(self) -> bool:
        with worker_span("tally_feed.poll"):
            processed = self._consumer.poll_once()
        report_queue_depth(QUEUE_NAME, 0 if processed else 1)
        return processed

    async def run_forever(self) -> None:
        logger.info("tally feed worker started")
        while True:
            processed = await asyncio.to_thread(self.poll)
            if not processed:
                await asyncio.sleep(1)


async def run() -> None:
    configure_worker("tally-feed-worker", queues=[QUEUE_NAME])
    worker = TallyFeedWorker()
    await worker.run_forever()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - signal handling for CLI
        logger.info("tally feed worker stopped")


if __name__ == "__main__":
    main()
