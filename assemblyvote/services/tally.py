"""Weighted vote tallies: snapshot types and an incremental aggregator."""
from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal

_ZERO = Decimal("0")
_CENT = Decimal("0.01")
_CLOSED = "CLOSED"


def percentage(part: Decimal, total: Decimal) -> Decimal:
    if total == 0:
        return _ZERO
    return (part / total * 100).quantize(_CENT)


@dataclass(slots=True)
class OptionTally:
    option_id: str
    label: str
    count: int = 0
    weight: Decimal = _ZERO
    percentage: Decimal = _ZERO


@dataclass(slots=True)
class VoteTally:
    """Per-option weight and ballot counts; option weights sum to ``total_weight``."""

    vote_id: str
    status: str
    total_weight: Decimal
    total_ballots: int
    options: list[OptionTally] = field(default_factory=list)

    @classmethod
    def build(cls, vote_id: str, status: str, options: Iterable[OptionTally]) -> "VoteTally":
        rows = list(options)
        total_weight = sum((row.weight for row in rows), _ZERO)
        for row in rows:
            row.percentage = percentage(row.weight, total_weight)
        return cls(
            vote_id=vote_id,
            status=status,
            total_weight=total_weight,
            total_ballots=sum(row.count for row in rows),
            options=rows,
        )


class LiveTally:
    """Tally kept current by applying ballots one at a time.

    Ballot ids already counted are remembered so a replayed change feed
    cannot count the same ballot twice.
    """

    def __init__(
        self,
        vote_id: str,
        status: str,
        options: Iterable[tuple[str, str]],
        *,
        counted_ballot_ids: Iterable[str] = (),
    ) -> None:
        self.vote_id = vote_id
        self.status = status
        self._labels: dict[str, str] = {}
        self._counts: dict[str, int] = {}
        self._weights: dict[str, Decimal] = {}
        for option_id, label in options:
            self._labels[option_id] = label
            self._counts[option_id] = 0
            self._weights[option_id] = _ZERO
        self._counted = set(counted_ballot_ids)
        self._lock = threading.Lock()

    @classmethod
    def from_tally(cls, tally: VoteTally, *, counted_ballot_ids: Iterable[str] = ()) -> "LiveTally":
        live = cls(
            tally.vote_id,
            tally.status,
            [(row.option_id, row.label) for row in tally.options],
            counted_ballot_ids=counted_ballot_ids,
        )
        for row in tally.options:
            live._counts[row.option_id] = row.count
            live._weights[row.option_id] = row.weight
        return live

    def apply(self, option_id: str, weight: Decimal, *, ballot_id: str | None = None) -> bool:
        """Count one ballot; returns ``False`` for unknown options or repeated ballots."""
        with self._lock:
            if option_id not in self._labels:
                return False
            if ballot_id is not None:
                if ballot_id in self._counted:
                    return False
                self._counted.add(ballot_id)
            self._counts[option_id] += 1
            self._weights[option_id] += Decimal(weight)
            return True

    def snapshot(self) -> VoteTally:
        with self._lock:
            rows = [
                OptionTally(
                    option_id=option_id,
                    label=label,
                    count=self._counts[option_id],
                    weight=self._weights[option_id],
                )
                for option_id, label in self._labels.items()
            ]
            return VoteTally.build(self.vote_id, self.status, rows)


class TallyProjection:
    """In-memory read model of the votes seen on the change feed.

    Closed votes are final, so their entries are dropped instead of kept
    for the life of the process.
    """

    def __init__(self, loader: Callable[[str], LiveTally]) -> None:
        self._loader = loader
        self._tallies: dict[str, LiveTally] = {}

    def __len__(self) -> int:
        return len(self._tallies)

    def tally_for(self, vote_id: str) -> LiveTally:
        live = self._tallies.get(vote_id)
        if live is None:
            live = self._loader(vote_id)
            if live.status != _CLOSED:
                self._tallies[vote_id] = live
        return live

    def record_ballot(self, vote_id: str, option_id: str, weight: Decimal, ballot_id: str) -> bool:
        return self.tally_for(vote_id).apply(option_id, weight, ballot_id=ballot_id)

    def record_status(self, vote_id: str, status: str) -> None:
        if status == _CLOSED:
            self.forget(vote_id)
            return
        self.tally_for(vote_id).status = status

    def forget(self, vote_id: str) -> None:
        self._tallies.pop(vote_id, None)

    def snapshot(self, vote_id: str) -> VoteTally | None:
        live = self._tallies.get(vote_id)
        return live.snapshot() if live is not None else None


__all__ = ["LiveTally", "OptionTally", "TallyProjection", "VoteTally", "percentage"]
