"""Weighted voting: ballot casting, tallies and vote lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.errors import (
    AlreadyVoted,
    Conflict,
    NotFound,
    NoVotingRights,
    ValidationError,
    TransactionConflict,
    VoteNotOpen,
)
from assemblyvote.db.session import retry_on_conflict, serializable_transaction
from assemblyvote.models import (
    ELEVATED_ROLES,
    Assembly,
    AttendanceLog,
    Ballot,
    IdentityRole,
    Unit,
    Vote,
    VoteOption,
    VoteStatus,
)
from assemblyvote.models.base import utcnow
from assemblyvote.obs import BALLOT_WEIGHT_COUNTER, BALLOTS_CAST_COUNTER, core_span
from assemblyvote.services.attendance import as_weight
from assemblyvote.services.audit_trail import record_audit
from assemblyvote.services.events import AssemblyEvent, EventPublisher, publish_safely
from assemblyvote.services.identities import IdentityDirectory, authorize
from assemblyvote.services.tally import LiveTally, OptionTally, VoteTally

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[VoteStatus, set[VoteStatus]] = {
    VoteStatus.DRAFT: {VoteStatus.OPEN},
    VoteStatus.OPEN: {VoteStatus.PAUSED, VoteStatus.CLOSED},
    VoteStatus.PAUSED: {VoteStatus.OPEN},
    VoteStatus.CLOSED: set(),
}

_PUBLIC_STATUSES = (VoteStatus.OPEN, VoteStatus.CLOSED)


@dataclass(slots=True, frozen=True)
class CastOutcome:
    vote_id: str
    option_id: str
    ballots_created: int
    weight: Decimal
    unit_ids: list[str] = field(default_factory=list)
    skipped_unit_ids: list[str] = field(default_factory=list)


class VotingService:
    """Records one ballot per represented unit and aggregates them by coefficient."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._publisher = publisher
        self._directory = IdentityDirectory(session, settings=self._settings)

    def cast_vote(
        self,
        acting_id: str,
        vote_id: str,
        option_id: str,
        target: str | None = None,
    ) -> CastOutcome:
        actor = self._directory.require(acting_id)
        vote = self._require_vote(vote_id)
        if vote.status != VoteStatus.OPEN:
            raise VoteNotOpen("This vote is not open")
        option = self._session.get(VoteOption, option_id)
        if option is None or option.vote_id != vote.id:
            raise NotFound(f"Option '{option_id}' does not belong to this vote")

        voter = actor
        if target is not None:
            authorize(actor, *ELEVATED_ROLES)
            resolved = self._directory.resolve(target)
            if resolved is None:
                raise NotFound(f"No identity matches '{target}'")
            voter = resolved
        on_behalf = voter.id != actor.id

        def _insert_ballots() -> tuple[list[Ballot], list[str], str, list[AssemblyEvent], Decimal]:
            created: list[Ballot] = []
            skipped: list[str] = []
            with serializable_transaction(self._session):
                current = self._session.get(Vote, vote_id, populate_existing=True)
                if current is None or current.status != VoteStatus.OPEN:
                    raise VoteNotOpen("This vote is not open")
                units = self._directory.units_represented_by(voter.id, assembly_id=current.assembly_id)
                if not units:
                    raise NoVotingRights("No units are represented by this voter")
                if on_behalf and not self._any_checked_in(units):
                    raise Conflict(
                        "The voter must be checked in before an operator can vote for them",
                        code="NOT_CHECKED_IN",
                    )

                voted = self._units_already_voted(current.id, [unit.id for unit in units])
                for unit in units:
                    if unit.id in voted:
                        skipped.append(unit.id)
                        continue
                    ballot = Ballot(
                        vote_id=current.id,
                        option_id=option_id,
                        unit_id=unit.id,
                        voter_identity_id=voter.id,
                        cast_by_identity_id=actor.id,
                        weight=unit.coefficient,
                    )
                    try:
                        with self._session.begin_nested():
                            self._session.add(ballot)
                    except IntegrityError:
                        skipped.append(unit.id)
                        continue
                    created.append(ballot)

                if not created:
                    raise AlreadyVoted("Every represented unit has already voted")

                assembly_id = current.assembly_id
                events = [AssemblyEvent.ballot_cast(ballot, assembly_id=assembly_id) for ballot in created]
                weight = sum((Decimal(ballot.weight) for ballot in created), Decimal("0"))
                record_audit(
                    self._session,
                    action="ballot.cast",
                    resource_type="Vote",
                    resource_id=current.id,
                    assembly_id=assembly_id,
                    actor_id=actor.id,
                    payload={
                        "option_id": option_id,
                        "voter_identity_id": voter.id,
                        "units": [ballot.unit_id for ballot in created],
                        "weight": str(weight),
                    },
                )
            return created, skipped, assembly_id, events, weight

        with core_span("vote.cast", vote_id=vote_id, on_behalf=on_behalf):
            try:
                created, skipped, assembly_id, events, weight = retry_on_conflict(_insert_ballots)
            except TransactionConflict as exc:
                # Concurrent casts for the same units kept winning.
                raise AlreadyVoted("Every represented unit has already voted") from exc
        unit_ids = [ballot.unit_id for ballot in created]

        BALLOTS_CAST_COUNTER.labels(on_behalf=str(on_behalf).lower()).inc(len(unit_ids))
        BALLOT_WEIGHT_COUNTER.inc(float(weight))
        publish_safely(self._publisher, events)
        logger.info(
            "ballots cast",
            extra={"vote_id": vote_id, "ballots": len(unit_ids), "on_behalf": on_behalf},
        )
        return CastOutcome(
            vote_id=vote_id,
            option_id=option_id,
            ballots_created=len(unit_ids),
            weight=as_weight(weight),
            unit_ids=unit_ids,
            skipped_unit_ids=skipped,
        )

    def get_vote_tally(self, vote_id: str) -> VoteTally:
        vote = self._require_vote(vote_id)
        rows = self._session.execute(
            select(
                VoteOption.id,
                VoteOption.label,
                func.count(Ballot.id),
                func.coalesce(func.sum(Ballot.weight), 0),
            )
            .outerjoin(Ballot, Ballot.option_id == VoteOption.id)
            .where(VoteOption.vote_id == vote.id)
            .group_by(VoteOption.id, VoteOption.label, VoteOption.order_index)
            .order_by(VoteOption.order_index)
        ).all()
        options = [
            OptionTally(option_id=option_id, label=label, count=int(count), weight=as_weight(weight))
            for option_id, label, count, weight in rows
        ]
        return VoteTally.build(vote.id, vote.status.value, options)

    def live_tally(self, vote_id: str) -> LiveTally:
        """Seed an incremental tally, remembering which ballots it already counts."""
        tally = self.get_vote_tally(vote_id)
        counted = self._session.scalars(select(Ballot.id).where(Ballot.vote_id == vote_id))
        return LiveTally.from_tally(tally, counted_ballot_ids=counted)

    def create_vote(
        self,
        actor_id: str,
        assembly_id: str,
        title: str,
        options: list[str],
        description: str | None = None,
    ) -> Vote:
        actor = authorize(self._directory.require(actor_id), IdentityRole.ADMIN)
        if self._session.get(Assembly, assembly_id) is None:
            raise NotFound(f"Assembly '{assembly_id}' was not found")
        if not title or not title.strip():
            raise ValidationError("A vote needs a title")
        labels = self._clean_labels(options)

        vote = Vote(
            assembly_id=assembly_id,
            title=title.strip(),
            description=description,
            status=VoteStatus.DRAFT,
            options=[VoteOption(label=label, order_index=index) for index, label in enumerate(labels)],
        )
        self._session.add(vote)
        self._session.flush()
        record_audit(
            self._session,
            action="vote.created",
            resource_type="Vote",
            resource_id=vote.id,
            assembly_id=assembly_id,
            actor_id=actor.id,
            payload={"title": vote.title, "options": labels},
        )
        self._session.commit()
        self._session.refresh(vote)
        logger.info("vote created", extra={"vote_id": vote.id, "assembly_id": assembly_id})
        return vote

    def update_vote_status(self, actor_id: str, vote_id: str, new_status: VoteStatus) -> Vote:
        actor = authorize(self._directory.require(actor_id), IdentityRole.ADMIN)
        self._require_vote(vote_id)
        with serializable_transaction(self._session):
            vote = self._session.get(Vote, vote_id, populate_existing=True)
            if vote is None:
                raise NotFound(f"Vote '{vote_id}' was not found")
            allowed = _ALLOWED_TRANSITIONS.get(vote.status, set())
            if new_status not in allowed:
                raise Conflict(f"Cannot move a {vote.status.value} vote to {new_status.value}")
            previous = vote.status
            vote.status = new_status
            now = utcnow()
            if new_status == VoteStatus.OPEN and vote.opened_at is None:
                vote.opened_at = now
            if new_status == VoteStatus.CLOSED:
                vote.closed_at = now
            record_audit(
                self._session,
                action="vote.status_changed",
                resource_type="Vote",
                resource_id=vote.id,
                assembly_id=vote.assembly_id,
                actor_id=actor.id,
                payload={"from": previous.value, "to": new_status.value},
            )
            event = AssemblyEvent.vote_status_changed(vote)

        publish_safely(self._publisher, [event])
        logger.info(
            "vote status changed",
            extra={"vote_id": vote_id, "from": previous.value, "to": new_status.value},
        )
        return vote

    def update_vote_details(
        self,
        actor_id: str,
        vote_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        options: list[str] | None = None,
    ) -> Vote:
        """Edit a vote; options may only change while no ballots can arrive."""

        actor = authorize(self._directory.require(actor_id), IdentityRole.ADMIN)
        self._require_vote(vote_id)
        with serializable_transaction(self._session):
            vote = self._session.get(Vote, vote_id, populate_existing=True)
            if vote is None:
                raise NotFound(f"Vote '{vote_id}' was not found")
            if vote.status == VoteStatus.CLOSED:
                raise Conflict("A closed vote cannot be edited")
            if title is not None:
                if not title.strip():
                    raise ValidationError("A vote needs a title")
                vote.title = title.strip()
            if description is not None:
                vote.description = description
            if options is not None:
                if vote.status not in (VoteStatus.DRAFT, VoteStatus.PAUSED):
                    raise Conflict("Pause the vote before editing its options")
                self._replace_options(vote, self._clean_labels(options))
            record_audit(
                self._session,
                action="vote.updated",
                resource_type="Vote",
                resource_id=vote.id,
                assembly_id=vote.assembly_id,
                actor_id=actor.id,
                payload={"title": title, "options": options},
            )
        self._session.refresh(vote)
        return vote

    def delete_vote(self, actor_id: str, vote_id: str) -> None:
        actor = authorize(self._directory.require(actor_id), IdentityRole.ADMIN)
        vote = self._require_vote(vote_id)
        assembly_id = vote.assembly_id
        with serializable_transaction(self._session):
            removed = self._session.execute(delete(Ballot).where(Ballot.vote_id == vote_id)).rowcount or 0
            vote = self._session.get(Vote, vote_id, populate_existing=True)
            if vote is not None:
                self._session.delete(vote)
            record_audit(
                self._session,
                action="vote.deleted",
                resource_type="Vote",
                resource_id=vote_id,
                assembly_id=assembly_id,
                actor_id=actor.id,
                payload={"ballots_removed": removed},
            )
        publish_safely(self._publisher, [AssemblyEvent.vote_deleted(vote_id=vote_id, assembly_id=assembly_id)])
        logger.info("vote deleted", extra={"vote_id": vote_id, "ballots": removed})

    def list_votes(self, actor_id: str, assembly_id: str) -> list[Vote]:
        actor = self._directory.require(actor_id)
        statement = select(Vote).where(Vote.assembly_id == assembly_id).order_by(Vote.created_at, Vote.id)
        if actor.role != IdentityRole.ADMIN:
            statement = statement.where(Vote.status.in_(_PUBLIC_STATUSES))
        return list(self._session.scalars(statement))

    def _require_vote(self, vote_id: str) -> Vote:
        vote = self._session.get(Vote, vote_id)
        if vote is None:
            raise NotFound(f"Vote '{vote_id}' was not found")
        return vote

    def _units_already_voted(self, vote_id: str, unit_ids: list[str]) -> set[str]:
        statement = select(Ballot.unit_id).where(Ballot.vote_id == vote_id, Ballot.unit_id.in_(unit_ids))
        return set(self._session.scalars(statement))

    def _any_checked_in(self, units: list[Unit]) -> bool:
        statement = select(func.count(AttendanceLog.id)).where(
            AttendanceLog.unit_id.in_([unit.id for unit in units])
        )
        return bool(self._session.scalar(statement))

    @staticmethod
    def _clean_labels(options: list[str]) -> list[str]:
        labels = [label.strip() for label in options if label and label.strip()]
        if len(labels) < 2:
            raise ValidationError("A vote needs at least two options")
        if len({label.lower() for label in labels}) != len(labels):
            raise ValidationError("Vote options must be distinct")
        return labels

    def _replace_options(self, vote: Vote, labels: list[str]) -> None:
        existing = {option.label: option for option in vote.options}
        keep = set(labels)
        for label, option in existing.items():
            if label in keep:
                continue
            ballots = self._session.scalar(select(func.count(Ballot.id)).where(Ballot.option_id == option.id))
            if ballots:
                raise Conflict(f"Option '{label}' already has ballots and cannot be removed")
            vote.options.remove(option)
        for index, label in enumerate(labels):
            option = existing.get(label)
            if option is None:
                vote.options.append(VoteOption(label=label, order_index=index))
            else:
                option.order_index = index
        self._session.flush()


__all__ = ["CastOutcome", "VotingService"]
