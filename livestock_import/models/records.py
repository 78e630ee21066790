from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

"""Record models produced by the import pipeline.

- CandidateUnit: one animal extracted from a row (canonical string numerics)
- Transaction: one offtake visit aggregated from one or more rows
- FlatRecord: one row of a simple import (farmers, fodder, training)
- ImportBatch: bounded slice of records written in one request
"""

__all__ = [
    "CandidateUnit",
    "Transaction",
    "FlatRecord",
    "ImportBatch",
]


@dataclass(frozen=True)
class CandidateUnit:
    """One physical unit (animal) sold within a transaction.

    Values are canonical string numerics ("40.0", "20.00", "1000.00") or ""
    when the source cell was blank.
    """
    live_weight: str
    carcass_weight: str
    price: str

    def to_payload(self) -> dict[str, str]:
        return {"live": self.live_weight, "carcass": self.carcass_weight, "price": self.price}

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> CandidateUnit:
        def _text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value)

        return cls(live_weight=_text("live"), carcass_weight=_text("carcass"), price=_text("price"))


@dataclass
class Transaction:
    """Logical offtake event grouped by identity + date.

    The grouping key lives only for the duration of one import run and is not
    part of the stored payload.
    """
    key: str
    id_number: str
    name: str = ""
    gender: str = ""
    phone: str = ""
    county: str = ""
    subcounty: str = ""
    location: str = ""
    programme: str = ""
    username: str = ""
    date: str = ""  # display date ("12 Jan 2024") or raw text when unparseable
    created_at: int = 0  # epoch milliseconds
    offtake_user_id: str = ""
    units: list[CandidateUnit] = field(default_factory=list)

    def add_units(self, units: Sequence[CandidateUnit]) -> None:
        self.units.extend(units)

    def to_payload(self) -> dict[str, Any]:
        """Stored field names, without derived totals."""
        return {
            "county": self.county,
            "createdAt": self.created_at,
            "date": self.date,
            "gender": self.gender,
            "idNumber": self.id_number,
            "location": self.location,
            "name": self.name,
            "offtakeUserId": self.offtake_user_id,
            "phone": self.phone,
            "programme": self.programme,
            "subcounty": self.subcounty,
            "username": self.username,
            "goats": [unit.to_payload() for unit in self.units],
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any], *, created_at: int) -> Transaction:
        """Build from an object that already carries stored field names (JSON input)."""
        def _text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value).strip()

        raw_units = data.get("goats") or []
        units = [CandidateUnit.from_payload(u) for u in raw_units if isinstance(u, Mapping)]
        id_number = _text("idNumber")
        stamp = data.get("createdAt")
        return cls(
            key=f"{id_number}_{_text('date')}",
            id_number=id_number,
            name=_text("name"),
            gender=_text("gender"),
            phone=_text("phone"),
            county=_text("county"),
            subcounty=_text("subcounty"),
            location=_text("location"),
            programme=_text("programme"),
            username=_text("username"),
            date=_text("date"),
            created_at=stamp if isinstance(stamp, int) and not isinstance(stamp, bool) else created_at,
            offtake_user_id=_text("offtakeUserId"),
            units=units,
        )


@dataclass(frozen=True)
class FlatRecord:
    """One row of a simple (non-grouped) import.

    row_number is the 1-based physical data row (header excluded); 0 for
    records that did not come from a tabular row (JSON input).
    """
    row_number: int
    values: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True)
class ImportBatch:
    """Bounded slice of the final record list."""
    index: int  # 0-based chunk number
    start: int  # offset of the first record in the full list
    records: Sequence[Transaction | FlatRecord]

    def __len__(self) -> int:
        return len(self.records)
