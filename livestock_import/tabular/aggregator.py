from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from functools import partial, reduce

from ..models.column_role import ColumnRole
from ..models.records import Transaction
from .builder import OfftakeRow
from .coercion import format_display_date

"""Transaction aggregator.

Rows are folded into an AggregationState. Counters and last_key are replaced
per step, but the transactions dict and its Transaction objects are shared by
every state of one fold and extended in place; do not reuse an earlier state.

Grouping key: identity + "_" + raw date text. A row with a blank identity is
a continuation row and attaches to the most recent key; with no prior key it
is skipped. Transactions whose unit list stays empty are dropped at the end.
"""

__all__ = [
    "AggregationContext",
    "AggregationState",
    "transaction_key",
    "generate_offtake_user_id",
    "aggregate_step",
    "aggregate_rows",
    "finalize",
]


@dataclass(frozen=True)
class AggregationContext:
    """Run-wide values used when a new Transaction is created."""
    programme: str
    username: str = ""  # importing user's display name
    timezone: str = "UTC"
    clock: Callable[[], float] = time.time
    rng: random.Random = field(default_factory=random.Random)


@dataclass(frozen=True)
class AggregationState:
    transactions: dict[str, Transaction] = field(default_factory=dict)
    last_key: str | None = None
    skipped_rows: int = 0
    used_rows: int = 0


def transaction_key(identity: str, raw_date: str) -> str:
    return f"{identity}_{raw_date}"


def generate_offtake_user_id(location: str, county: str, rng: random.Random) -> str:
    """Three-letter place prefix plus four random digits ("NAI4821")."""
    place = location or county or "UNK"
    return f"{place[:3].upper()}{rng.randint(1000, 9999)}"


def _new_transaction(key: str, row: OfftakeRow, ctx: AggregationContext) -> Transaction:
    location = row.get(ColumnRole.LOCATION)
    county = row.get(ColumnRole.COUNTY)
    supplied_id = row.get(ColumnRole.OFFTAKE_USER_ID)
    return Transaction(
        key=key,
        id_number=row.identity,
        name=row.get(ColumnRole.NAME),
        gender=row.get(ColumnRole.GENDER),
        phone=row.get(ColumnRole.PHONE),
        county=county,
        subcounty=row.get(ColumnRole.SUBCOUNTY),
        location=location,
        programme=row.get(ColumnRole.PROGRAMME) or ctx.programme,
        username=row.get(ColumnRole.REGISTERED_BY) or ctx.username or "admin",
        date=format_display_date(row.raw_date, ctx.timezone) if row.raw_date else "",
        created_at=int(ctx.clock() * 1000),
        offtake_user_id=supplied_id or generate_offtake_user_id(location, county, ctx.rng),
    )


def aggregate_step(ctx: AggregationContext, state: AggregationState, row: OfftakeRow) -> AggregationState:
    """Fold one row into the state.

    Updates state.transactions in place; the returned state shares that dict.
    """
    identity = row.identity
    if identity:
        key = transaction_key(identity, row.raw_date)
    elif state.last_key is not None:
        key = state.last_key
    else:
        return replace(state, skipped_rows=state.skipped_rows + 1)

    transactions = state.transactions
    if key not in transactions:
        transactions[key] = _new_transaction(key, row, ctx)

    if row.units:
        transactions[key].add_units(row.units)
        return replace(state, transactions=transactions, last_key=key, used_rows=state.used_rows + 1)
    return replace(
        state, transactions=transactions, last_key=key, skipped_rows=state.skipped_rows + 1
    )


def finalize(state: AggregationState) -> list[Transaction]:
    """Transactions with at least one unit, in first-seen order."""
    return [t for t in state.transactions.values() if t.units]


def aggregate_rows(
    rows: Iterable[OfftakeRow], ctx: AggregationContext
) -> tuple[list[Transaction], AggregationState]:
    state = reduce(partial(aggregate_step, ctx), rows, AggregationState())
    return finalize(state), state
