"""Kafka change feed for ballots, attendance and vote status."""
from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Protocol
from uuid import uuid4

from kafka import KafkaConsumer, KafkaProducer
from pydantic import BaseModel

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.models import Ballot, Unit, Vote
from assemblyvote.obs import inject_traceparent
from assemblyvote.services.tally import TallyProjection

logger = logging.getLogger(__name__)

EventType = Literal["ballot.cast", "attendance.toggled", "vote.status_changed", "vote.deleted"]


class AssemblyEvent(BaseModel):
    """Serializable change notification; consumers rebuild projections from these."""

    event_id: str
    event_type: EventType
    assembly_id: str
    vote_id: str | None = None
    option_id: str | None = None
    ballot_id: str | None = None
    unit_id: str | None = None
    weight: str | None = None
    present: bool | None = None
    status: str | None = None
    traceparent: str | None = None
    occurred_at: datetime

    @classmethod
    def _new(cls, event_type: EventType, assembly_id: str, **fields: object) -> "AssemblyEvent":
        return cls(
            event_id=uuid4().hex,
            event_type=event_type,
            assembly_id=assembly_id,
            traceparent=inject_traceparent({}).get("traceparent"),
            occurred_at=datetime.now(timezone.utc),
            **fields,
        )

    @classmethod
    def ballot_cast(cls, ballot: Ballot, *, assembly_id: str) -> "AssemblyEvent":
        return cls._new(
            "ballot.cast",
            assembly_id,
            vote_id=ballot.vote_id,
            option_id=ballot.option_id,
            ballot_id=ballot.id,
            unit_id=ballot.unit_id,
            weight=str(ballot.weight),
        )

    @classmethod
    def attendance_toggled(cls, unit: Unit, *, present: bool) -> "AssemblyEvent":
        return cls._new("attendance.toggled", unit.assembly_id, unit_id=unit.id, present=present)

    @classmethod
    def vote_status_changed(cls, vote: Vote) -> "AssemblyEvent":
        return cls._new("vote.status_changed", vote.assembly_id, vote_id=vote.id, status=vote.status.value)

    @classmethod
    def vote_deleted(cls, *, vote_id: str, assembly_id: str) -> "AssemblyEvent":
        return cls._new("vote.deleted", assembly_id, vote_id=vote_id)


class EventPublisher(Protocol):
    def publish(self, events: Iterable[AssemblyEvent]) -> None:
        ...


class AssemblyEventPublisher:
    """Publishes assembly change events to Kafka."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        producer_factory: Callable[[], KafkaProducer] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._producer_factory = producer_factory or self._default_factory
        self._producer: KafkaProducer | None = None

    def _default_factory(self) -> KafkaProducer:
        return KafkaProducer(
            bootstrap_servers=self._settings.kafka_bootstrap_servers.split(","),
            value_serializer=lambda value: json.dumps(value).encode("utf-8"),
        )

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = self._producer_factory()
        return self._producer

    def publish(self, events: Iterable[AssemblyEvent]) -> None:
        producer = self._get_producer()
        sent = 0
        for event in events:
            producer.send(
                self._settings.assembly_events_topic,
                key=event.assembly_id.encode("utf-8"),
                value=event.model_dump(mode="json"),
            )
            sent += 1
        if sent:
            producer.flush()
            logger.debug("published assembly events", extra={"count": sent})


def publish_safely(publisher: EventPublisher | None, events: Iterable[AssemblyEvent]) -> None:
    """Publish after commit; the feed is advisory so failures are only logged."""
    if publisher is None:
        return
    batch = list(events)
    if not batch:
        return
    try:
        publisher.publish(batch)
    except Exception:
        logger.exception("failed to publish assembly events", extra={"count": len(batch)})


class AssemblyEventConsumer:
    """Consumes assembly events into a :class:`TallyProjection`."""

    def __init__(
        self,
        *,
        projection: TallyProjection,
        settings: Settings | None = None,
        consumer_factory: Callable[[], KafkaConsumer] | None = None,
        on_attendance_change: Callable[[str], None] | None = None,
    ) -> None:
        self._projection = projection
        self._settings = settings or get_settings()
        self._consumer_factory = consumer_factory or self._default_factory
        self._on_attendance_change = on_attendance_change
        self._consumer: KafkaConsumer | None = None

    def _default_factory(self) -> KafkaConsumer:
        return KafkaConsumer(
            self._settings.assembly_events_topic,
            bootstrap_servers=self._settings.kafka_bootstrap_servers.split(","),
            value_deserializer=lambda data: json.loads(data.decode("utf-8")),
            auto_offset_reset="earliest",
            enable_auto_commit=False,
            group_id=self._settings.tally_consumer_group,
        )

    def _get_consumer(self) -> KafkaConsumer:
        if self._consumer is None:
            self._consumer = self._consumer_factory()
        return self._consumer

    def apply(self, event: AssemblyEvent) -> bool:
        if event.event_type == "ballot.cast" and event.vote_id and event.option_id and event.ballot_id:
            return self._projection.record_ballot(
                event.vote_id, event.option_id, Decimal(event.weight or "0"), event.ballot_id
            )
        if event.event_type == "vote.status_changed" and event.vote_id and event.status:
            self._projection.record_status(event.vote_id, event.status)
            return True
        if event.event_type == "vote.deleted" and event.vote_id:
            self._projection.forget(event.vote_id)
            return True
        if event.event_type == "attendance.toggled":
            if self._on_attendance_change is not None:
                self._on_attendance_change(event.assembly_id)
            return True
        return False

    def poll_once(self) -> bool:
        consumer = self._get_consumer()
        records = consumer.poll(timeout_ms=1000)
        if not records:
            return False

        processed = False
        try:
            for partition_records in records.values():
                for record in partition_records:
                    event = AssemblyEvent.model_validate(record.value)
                    processed = self.apply(event) or processed
            consumer.commit()
        except Exception:
            logger.exception("failed to apply assembly events")
            raise
        return processed


__all__ = [
    "AssemblyEvent",
    "AssemblyEventConsumer",
    "AssemblyEventPublisher",
    "EventPublisher",
    "publish_safely",
]
