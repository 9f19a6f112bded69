from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterable, NamedTuple, Optional

from . import config
from .records import DataRecord, Gender


class CountAndPercentage(NamedTuple):
    count: int
    percentage: float

    @classmethod
    def of(cls, count: int, total: int) -> "CountAndPercentage":
        return cls(count, count / total if total else 0.0)

    @classmethod
    def all_of(cls, total: int) -> "CountAndPercentage":
        return cls(total, 1.0)


class InventorRate(NamedTuple):
    all: CountAndPercentage
    women: CountAndPercentage
    men: CountAndPercentage
    undetermined: CountAndPercentage


class DisclosureOutput(NamedTuple):
    all: CountAndPercentage
    at_least_one_woman: CountAndPercentage
    at_least_one_man: CountAndPercentage
    at_least_one_undetermined: CountAndPercentage
    solo_woman: CountAndPercentage
    solo_man: CountAndPercentage


class FractionalInventorship(NamedTuple):
    all: float
    women: float
    men: float
    undetermined: float


@dataclass(frozen=True)
class MismatchEvent:
    person_id: str
    old_record: DataRecord
    new_record: DataRecord


MismatchListener = Callable[[MismatchEvent], None]


def _id_key(value: str) -> str:
    return value.casefold()


class SummaryInfo:
    """Per-person and per-disclosure aggregation over enriched rows.

    People are keyed by person id (synthesized from name and country when
    missing) and keep the first record seen; a later row with a different
    gender marks the person INDETERMINATE and notifies mismatch listeners.
    Disclosures map to the set of people listed on them; rows without a
    disclosure id each count as their own disclosure.
    """

    def __init__(self) -> None:
        self.people: dict[str, DataRecord] = {}
        self.disclosures: dict[str, set[str]] = {}
        self.row_count = 0
        self._mismatch_listeners: list[MismatchListener] = []

    def add_mismatch_listener(self, listener: MismatchListener) -> None:
        self._mismatch_listeners.append(listener)

    def remove_mismatch_listener(self, listener: MismatchListener) -> None:
        self._mismatch_listeners.remove(listener)

    def add(self, person_id: Optional[str], disclosure_id: Optional[str], record: DataRecord) -> None:
        self.row_count += 1
        if not person_id:
            person_id = (
                f"{(record.first_name or '').strip()}{config.KEY_SEPARATOR}{(record.country_code or '').strip()}"
            )
        person_key = _id_key(person_id)
        current = self.people.get(person_key)
        if current is None:
            self.people[person_key] = record
        elif current.gender is not record.gender:
            event = MismatchEvent(person_id, current, record)
            for listener in list(self._mismatch_listeners):
                listener(event)
            self.people[person_key] = replace(current, gender=Gender.INDETERMINATE)

        if not disclosure_id:
            disclosure_id = f"{self.row_count}{config.KEY_SEPARATOR}"
        self.disclosures.setdefault(_id_key(disclosure_id), set()).add(person_key)

    @property
    def unique_people(self) -> int:
        return len(self.people)

    @property
    def unique_disclosures(self) -> int:
        return len(self.disclosures)

    # Person predicates -------------------------------------------------- #
    def person_is_a_woman(self, person_key: str) -> bool:
        record = self.people.get(person_key)
        return record is not None and record.is_woman

    def person_is_a_man(self, person_key: str) -> bool:
        record = self.people.get(person_key)
        return record is not None and record.is_man

    def person_is_undetermined(self, person_key: str) -> bool:
        record = self.people.get(person_key)
        return record is None or record.is_undetermined

    def people_where(self, predicate: Callable[[DataRecord], bool]) -> CountAndPercentage:
        count = sum(1 for record in self.people.values() if predicate(record))
        return CountAndPercentage.of(count, len(self.people))

    def inventor_rate(self) -> InventorRate:
        return InventorRate(
            CountAndPercentage.all_of(len(self.people)),
            self.people_where(lambda r: r.is_woman),
            self.people_where(lambda r: r.is_man),
            self.people_where(lambda r: r.is_undetermined),
        )

    # Disclosure predicates ---------------------------------------------- #
    def at_least_one_woman(self, people: Iterable[str]) -> bool:
        return any(self.person_is_a_woman(p) for p in people)

    def at_least_one_man(self, people: Iterable[str]) -> bool:
        return any(self.person_is_a_man(p) for p in people)

    def at_least_one_undetermined(self, people: Iterable[str]) -> bool:
        return any(self.person_is_undetermined(p) for p in people)

    def solo_woman(self, people: set[str]) -> bool:
        return len(people) == 1 and self.person_is_a_woman(next(iter(people)))

    def solo_man(self, people: set[str]) -> bool:
        return len(people) == 1 and self.person_is_a_man(next(iter(people)))

    def disclosures_where(self, predicate: Callable[[set[str]], bool]) -> CountAndPercentage:
        count = sum(1 for people in self.disclosures.values() if predicate(people))
        return CountAndPercentage.of(count, len(self.disclosures))

    def disclosure_output(self) -> DisclosureOutput:
        return DisclosureOutput(
            CountAndPercentage.all_of(len(self.disclosures)),
            self.disclosures_where(self.at_least_one_woman),
            self.disclosures_where(self.at_least_one_man),
            self.disclosures_where(self.at_least_one_undetermined),
            self.disclosures_where(self.solo_woman),
            self.disclosures_where(self.solo_man),
        )

    def weighted_sum(self, predicate: Callable[[str], bool]) -> float:
        """Sum over disclosures of the share of each disclosure's people matching `predicate`."""
        return sum(
            sum(1 for p in people if predicate(p)) / len(people)
            for people in self.disclosures.values()
        )

    def fractional_inventorship(self) -> FractionalInventorship:
        return FractionalInventorship(
            float(len(self.disclosures)),
            self.weighted_sum(self.person_is_a_woman),
            self.weighted_sum(self.person_is_a_man),
            self.weighted_sum(self.person_is_undetermined),
        )
