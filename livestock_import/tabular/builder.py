from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..models.column_map import ColumnMap
from ..models.column_role import ColumnRole
from ..models.records import CandidateUnit, FlatRecord
from .coercion import coerce_bool, coerce_list, coerce_number, format_decimal, to_epoch_millis

"""Row-to-entity builders.

Each builder takes one decoded data row (header excluded) and the ColumnMap
resolved from the header row:

- build_offtake_row: singular fields + per-animal CandidateUnits
- build_farmer_record: farmer registry record with coerced counts/flags
- build_passthrough_record: header text -> cell text

Missing roles and short rows read as blank cells; builders never raise on
cell content.
"""

__all__ = [
    "OfftakeRow",
    "cell",
    "is_blank_row",
    "build_units",
    "build_offtake_row",
    "build_farmer_record",
    "build_passthrough_record",
    "LIVE_WEIGHT_PLACES",
    "CARCASS_WEIGHT_PLACES",
    "PRICE_PLACES",
]

LIVE_WEIGHT_PLACES = 1
CARCASS_WEIGHT_PLACES = 2
PRICE_PLACES = 2

_OFFTAKE_FIELDS = (
    ColumnRole.ID_NUMBER,
    ColumnRole.NAME,
    ColumnRole.GENDER,
    ColumnRole.PHONE,
    ColumnRole.COUNTY,
    ColumnRole.SUBCOUNTY,
    ColumnRole.LOCATION,
    ColumnRole.DATE,
    ColumnRole.PROGRAMME,
    ColumnRole.REGISTERED_BY,
    ColumnRole.OFFTAKE_USER_ID,
)


def cell(row: Sequence[str], index: int | None) -> str:
    """Trimmed cell text; "" for an absent role or a short row."""
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return value.strip() if isinstance(value, str) else str(value).strip()


def is_blank_row(row: Sequence[str]) -> bool:
    return all(not str(c).strip() for c in row)


@dataclass(frozen=True)
class OfftakeRow:
    """One data row of an offtake file, before aggregation."""
    row_number: int
    fields: dict[ColumnRole, str] = field(default_factory=dict)
    units: tuple[CandidateUnit, ...] = ()

    def get(self, role: ColumnRole) -> str:
        return self.fields.get(role, "")

    @property
    def identity(self) -> str:
        return self.get(ColumnRole.ID_NUMBER)

    @property
    def raw_date(self) -> str:
        return self.get(ColumnRole.DATE)


def build_units(row: Sequence[str], column_map: ColumnMap) -> list[CandidateUnit]:
    """Extract per-animal units in ascending unit order.

    A unit whose live weight, carcass weight and price cells are all blank is
    skipped. With no numbered columns the un-numbered columns form the single
    legacy unit.
    """
    units: list[CandidateUnit] = []
    for unit in column_map.unit_indices:
        columns = column_map.unit_columns(unit)
        live = cell(row, columns.get(ColumnRole.LIVE_WEIGHT))
        carcass = cell(row, columns.get(ColumnRole.CARCASS_WEIGHT))
        price = cell(row, columns.get(ColumnRole.PRICE))
        if not (live or carcass or price):
            continue
        units.append(
            CandidateUnit(
                live_weight=format_decimal(live, LIVE_WEIGHT_PLACES),
                carcass_weight=format_decimal(carcass, CARCASS_WEIGHT_PLACES),
                price=format_decimal(price, PRICE_PLACES),
            )
        )
    return units


def build_offtake_row(row: Sequence[str], column_map: ColumnMap, row_number: int) -> OfftakeRow:
    fields = {role: cell(row, column_map.index_of(role)) for role in _OFFTAKE_FIELDS}
    return OfftakeRow(
        row_number=row_number,
        fields=fields,
        units=tuple(build_units(row, column_map)),
    )


def _goats(row: Sequence[str], column_map: ColumnMap) -> dict[str, float] | float:
    male_idx = column_map.index_of(ColumnRole.GOATS_MALE)
    female_idx = column_map.index_of(ColumnRole.GOATS_FEMALE)
    total_idx = column_map.index_of(ColumnRole.GOATS_TOTAL)
    if male_idx is not None or female_idx is not None:
        male = coerce_number(cell(row, male_idx))
        female = coerce_number(cell(row, female_idx))
        total_text = cell(row, total_idx)
        total = coerce_number(total_text) if total_text else male + female
        return {"male": male, "female": female, "total": total}
    return {"total": coerce_number(cell(row, total_idx)), "male": 0.0, "female": 0.0}


def build_farmer_record(
    row: Sequence[str],
    column_map: ColumnMap,
    row_number: int,
    *,
    programme: str,
    timezone: str = "UTC",
    clock: Callable[[], float] | None = None,
) -> FlatRecord:
    """Build one farmer registry record.

    createdAt is the registration date in epoch milliseconds when it parses,
    otherwise the import wall clock.
    """
    def text(role: ColumnRole) -> str:
        return cell(row, column_map.index_of(role))

    registration_date = text(ColumnRole.DATE)
    created_at = to_epoch_millis(registration_date, timezone) if registration_date else None
    if created_at is None:
        now = clock() if clock is not None else datetime.now(UTC).timestamp()
        created_at = int(now * 1000)

    values: dict[str, Any] = {
        "name": text(ColumnRole.NAME),
        "gender": text(ColumnRole.GENDER),
        "county": text(ColumnRole.COUNTY),
        "subcounty": text(ColumnRole.SUBCOUNTY),
        "location": text(ColumnRole.LOCATION),
        "idNumber": text(ColumnRole.ID_NUMBER),
        "phone": text(ColumnRole.PHONE),
        "farmerId": text(ColumnRole.FARMER_ID),
        "cattle": coerce_number(text(ColumnRole.CATTLE)),
        "sheep": coerce_number(text(ColumnRole.SHEEP)),
        "goats": _goats(row, column_map),
        "vaccinated": coerce_bool(text(ColumnRole.VACCINATED)),
        "traceability": coerce_bool(text(ColumnRole.TRACEABILITY)),
        "vaccines": coerce_list(text(ColumnRole.VACCINES)),
        "dewormed": coerce_bool(text(ColumnRole.DEWORMED)),
        "dewormingDate": text(ColumnRole.DEWORMING_DATE),
        "vaccinationDate": text(ColumnRole.VACCINATION_DATE),
        "aggregationGroup": text(ColumnRole.AGGREGATION_GROUP),
        "registrationDate": registration_date,
        "username": text(ColumnRole.REGISTERED_BY) or "Unknown",
        "programme": programme,
        "createdAt": created_at,
    }
    return FlatRecord(row_number=row_number, values=values)


def build_passthrough_record(
    row: Sequence[str],
    raw_headers: Sequence[str],
    row_number: int,
    *,
    programme: str,
    clock: Callable[[], float] | None = None,
) -> FlatRecord:
    """Header text -> cell text, stamped with programme and import time.

    Columns with a blank header are dropped; a later duplicate header wins.
    """
    values: dict[str, Any] = {}
    for idx, header in enumerate(raw_headers):
        key = str(header).lstrip("\ufeff").strip()
        if not key:
            continue
        values[key] = cell(row, idx)
    now = clock() if clock is not None else datetime.now(UTC).timestamp()
    stamp = datetime.fromtimestamp(now, tz=UTC)
    values["programme"] = programme
    values["createdAt"] = stamp.isoformat().replace("+00:00", "Z")
    values["rawTimestamp"] = int(now * 1000)
    return FlatRecord(row_number=row_number, values=values)
