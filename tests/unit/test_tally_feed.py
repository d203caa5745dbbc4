from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session, sessionmaker

from assemblyvote.core.config import get_settings
from assemblyvote.models import VoteStatus
from assemblyvote.services.attendance import AttendanceRegistry, quorum_cache
from assemblyvote.services.events import AssemblyEvent, AssemblyEventConsumer, AssemblyEventPublisher
from assemblyvote.services.tally import LiveTally, TallyProjection
from assemblyvote.services.voting import VotingService
from workers.tally_feed import main as tally_feed


class FakeKafkaConsumer:
    def __init__(self, batches: list[list[AssemblyEvent]]) -> None:
        self._batches = list(batches)
        self.commits = 0

    def poll(self, timeout_ms: int = 0) -> dict[str, list[SimpleNamespace]]:
        if not self._batches:
            return {}
        batch = self._batches.pop(0)
        return {"assembly-events-0": [SimpleNamespace(value=event.model_dump(mode="json")) for event in batch]}

    def commit(self) -> None:
        self.commits += 1


class FakeKafkaProducer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, bytes, dict]] = []
        self.flushes = 0

    def send(self, topic: str, *, key: bytes, value: dict) -> None:
        self.sent.append((topic, key, value))

    def flush(self) -> None:
        self.flushes += 1


def _event(event_type: str, **fields: object) -> AssemblyEvent:
    return AssemblyEvent(
        event_id=f"evt-{event_type}-{fields.get('ballot_id', '')}",
        event_type=event_type,
        assembly_id="assembly-1",
        occurred_at=datetime.now(timezone.utc),
        **fields,
    )


def _static_loader(vote_id: str) -> LiveTally:
    return LiveTally(vote_id, "OPEN", [("yes", "Yes"), ("no", "No")])


def test_live_tally_ignores_unknown_options_and_replays() -> None:
    live = LiveTally("vote-1", "OPEN", [("yes", "Yes"), ("no", "No")])

    assert live.apply("yes", Decimal("0.25"), ballot_id="b1")
    assert not live.apply("yes", Decimal("0.25"), ballot_id="b1")
    assert not live.apply("maybe", Decimal("0.10"), ballot_id="b2")
    assert live.apply("no", Decimal("0.15"))

    snapshot = live.snapshot()
    rows = {row.label: row for row in snapshot.options}
    assert snapshot.total_ballots == 2
    assert snapshot.total_weight == Decimal("0.40")
    assert rows["Yes"].percentage == Decimal("62.50")
    assert rows["No"].percentage == Decimal("37.50")


def test_consumer_folds_events_into_projection() -> None:
    projection = TallyProjection(_static_loader)
    invalidated: list[str] = []
    fake = FakeKafkaConsumer(
        [
            [
                _event("ballot.cast", vote_id="vote-1", option_id="yes", ballot_id="b1", weight="0.25"),
                _event("ballot.cast", vote_id="vote-1", option_id="yes", ballot_id="b1", weight="0.25"),
                _event("ballot.cast", vote_id="vote-1", option_id="no", ballot_id="b2", weight="0.30"),
                _event("vote.status_changed", vote_id="vote-1", status="PAUSED"),
                _event("attendance.toggled", unit_id="unit-1", present=True),
            ]
        ]
    )
    consumer = AssemblyEventConsumer(
        projection=projection,
        consumer_factory=lambda: fake,
        on_attendance_change=invalidated.append,
    )

    assert consumer.poll_once() is True
    assert consumer.poll_once() is False

    snapshot = projection.snapshot("vote-1")
    assert snapshot.status == "PAUSED"
    assert snapshot.total_ballots == 2
    assert snapshot.total_weight == Decimal("0.55")
    assert invalidated == ["assembly-1"]
    assert fake.commits == 1


def test_deleted_vote_is_dropped_from_projection() -> None:
    projection = TallyProjection(_static_loader)
    consumer = AssemblyEventConsumer(projection=projection, consumer_factory=lambda: FakeKafkaConsumer([]))

    consumer.apply(_event("ballot.cast", vote_id="vote-1", option_id="yes", ballot_id="b1", weight="0.25"))
    assert projection.snapshot("vote-1") is not None

    assert consumer.apply(_event("vote.deleted", vote_id="vote-1"))
    assert projection.snapshot("vote-1") is None


def test_closed_vote_is_evicted_from_projection() -> None:
    projection = TallyProjection(_static_loader)
    consumer = AssemblyEventConsumer(projection=projection, consumer_factory=lambda: FakeKafkaConsumer([]))

    consumer.apply(_event("ballot.cast", vote_id="vote-1", option_id="yes", ballot_id="b1", weight="0.25"))
    consumer.apply(_event("ballot.cast", vote_id="vote-2", option_id="no", ballot_id="b2", weight="0.30"))
    assert len(projection) == 2

    assert consumer.apply(_event("vote.status_changed", vote_id="vote-1", status="CLOSED"))

    assert projection.snapshot("vote-1") is None
    assert projection.snapshot("vote-2") is not None
    assert len(projection) == 1


def test_closed_vote_is_not_cached_when_loaded() -> None:
    projection = TallyProjection(lambda vote_id: LiveTally(vote_id, "CLOSED", [("yes", "Yes")]))

    assert projection.record_ballot("vote-1", "yes", Decimal("0.25"), "b1") is True
    assert projection.snapshot("vote-1") is None
    assert len(projection) == 0


def test_publisher_keys_events_by_assembly() -> None:
    producer = FakeKafkaProducer()
    publisher = AssemblyEventPublisher(settings=get_settings(), producer_factory=lambda: producer)

    publisher.publish([])
    publisher.publish([_event("vote.deleted", vote_id="vote-1")])

    assert producer.flushes == 1
    topic, key, value = producer.sent[0]
    assert topic == "assembly-events"
    assert key == b"assembly-1"
    assert value["event_type"] == "vote.deleted"
    assert value["vote_id"] == "vote-1"


def test_worker_projection_matches_stored_tally(
    db_session: Session, community, publisher, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(tally_feed, "SessionLocal", sessionmaker(bind=db_session.get_bind()))
    voting = VotingService(db_session, publisher=publisher)
    vote = voting.create_vote(community.admin.id, community.assembly.id, "Budget", ["Yes", "No"])
    voting.update_vote_status(community.admin.id, vote.id, VoteStatus.OPEN)
    options = {option.label: option.id for option in vote.options}
    voting.cast_vote(community.bob.id, vote.id, options["Yes"])
    voting.cast_vote(community.alice.id, vote.id, options["No"])

    registry = AttendanceRegistry(db_session)
    registry.get_quorum(community.assembly.id)
    assert quorum_cache.get(community.assembly.id) is not None
    attendance = AssemblyEvent.attendance_toggled(community.units["201"], present=True)

    fake = FakeKafkaConsumer([publisher.events + [attendance]])
    worker = tally_feed.TallyFeedWorker(consumer_factory=lambda: fake)

    assert worker.poll() is True
    assert worker.poll() is False

    projected = worker.projection.snapshot(vote.id)
    stored = voting.get_vote_tally(vote.id)
    assert projected.total_ballots == stored.total_ballots == 3
    assert projected.total_weight == stored.total_weight
    assert quorum_cache.get(community.assembly.id) is None


def test_loader_tolerates_deleted_votes(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tally_feed, "SessionLocal", sessionmaker(bind=db_session.get_bind()))

    live = tally_feed.load_live_tally("gone")

    assert live.status == "DELETED"
    assert live.snapshot().options == []
