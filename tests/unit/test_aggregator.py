from __future__ import annotations

import random

from livestock_import.models.column_role import ColumnRole
from livestock_import.models.records import CandidateUnit
from livestock_import.tabular.aggregator import (
    AggregationContext,
    AggregationState,
    aggregate_rows,
    aggregate_step,
    generate_offtake_user_id,
    transaction_key,
)
from livestock_import.tabular.builder import OfftakeRow


def _ctx(**overrides) -> AggregationContext:
    values = {
        "programme": "KPMD",
        "username": "importer",
        "clock": lambda: 1705017600.0,
        "rng": random.Random(7),
    }
    values.update(overrides)
    return AggregationContext(**values)


def _row(n, identity="", date="2024-01-12", units=(), **fields) -> OfftakeRow:
    values = {ColumnRole.ID_NUMBER: identity, ColumnRole.DATE: date}
    for name, value in fields.items():
        values[ColumnRole[name.upper()]] = value
    return OfftakeRow(row_number=n, fields=values, units=tuple(units))


UNIT_A = CandidateUnit("40.0", "20.00", "1000.00")
UNIT_B = CandidateUnit("35.0", "18.00", "900.00")
UNIT_C = CandidateUnit("30.0", "", "")


def test_transaction_key_joins_identity_and_raw_date():
    assert transaction_key("12345", "2024-01-12") == "12345_2024-01-12"
    assert transaction_key("12345", "") == "12345_"


def test_generate_offtake_user_id_prefers_location_then_county():
    rng = random.Random(1)
    value = generate_offtake_user_id("Nairobi", "Kajiado", rng)
    assert value[:3] == "NAI"
    assert 1000 <= int(value[3:]) <= 9999
    assert generate_offtake_user_id("", "Isiolo", rng).startswith("ISI")
    assert generate_offtake_user_id("", "", rng).startswith("UNK")
    assert generate_offtake_user_id("Ol", "", rng).startswith("OL")


def test_rows_with_same_identity_and_date_merge_in_row_order():
    rows = [
        _row(1, "12345", units=[UNIT_A], name="Jane Doe"),
        _row(2, "12345", units=[UNIT_B], name="Someone Else"),
    ]
    transactions, state = aggregate_rows(rows, _ctx())
    assert len(transactions) == 1
    txn = transactions[0]
    assert txn.units == [UNIT_A, UNIT_B]
    # identity fields come from the first row of the group
    assert txn.name == "Jane Doe"
    assert state.used_rows == 2


def test_continuation_row_attaches_to_most_recent_transaction():
    rows = [
        _row(1, "111", units=[UNIT_A]),
        _row(2, "222", units=[UNIT_B]),
        _row(3, "", date="", units=[UNIT_C]),
    ]
    transactions, _ = aggregate_rows(rows, _ctx())
    assert [t.id_number for t in transactions] == ["111", "222"]
    assert transactions[1].units == [UNIT_B, UNIT_C]


def test_continuation_row_without_prior_key_is_skipped():
    rows = [_row(1, "", units=[UNIT_A]), _row(2, "111", units=[UNIT_B])]
    transactions, state = aggregate_rows(rows, _ctx())
    assert len(transactions) == 1
    assert transactions[0].units == [UNIT_B]
    assert state.skipped_rows == 1


def test_different_dates_are_separate_transactions():
    rows = [
        _row(1, "111", date="2024-01-12", units=[UNIT_A]),
        _row(2, "111", date="2024-01-13", units=[UNIT_B]),
    ]
    transactions, _ = aggregate_rows(rows, _ctx())
    assert [t.key for t in transactions] == ["111_2024-01-12", "111_2024-01-13"]


def test_transactions_without_units_are_dropped():
    rows = [_row(1, "111"), _row(2, "222", units=[UNIT_A])]
    transactions, state = aggregate_rows(rows, _ctx())
    assert [t.id_number for t in transactions] == ["222"]
    assert state.skipped_rows == 1
    assert len(state.transactions) == 2


def test_defaults_from_context_when_row_is_silent():
    transactions, _ = aggregate_rows([_row(1, "111", units=[UNIT_A], county="Isiolo")], _ctx())
    txn = transactions[0]
    assert txn.programme == "KPMD"
    assert txn.username == "importer"
    assert txn.created_at == 1705017600000
    assert txn.date == "12 Jan 2024"
    assert txn.offtake_user_id.startswith("ISI")


def test_row_values_override_context_defaults():
    row = _row(
        1, "111", units=[UNIT_A],
        programme="RANGE", registered_by="field01", offtake_user_id="MAR0001",
    )
    txn = aggregate_rows([row], _ctx(username=""))[0][0]
    assert txn.programme == "RANGE"
    assert txn.username == "field01"
    assert txn.offtake_user_id == "MAR0001"


def test_username_falls_back_to_admin():
    txn = aggregate_rows([_row(1, "111", units=[UNIT_A])], _ctx(username=""))[0][0]
    assert txn.username == "admin"


def test_unparseable_date_keeps_raw_text():
    txn = aggregate_rows([_row(1, "111", date="sometime", units=[UNIT_A])], _ctx())[0][0]
    assert txn.date == "sometime"


def test_aggregate_step_replaces_counters_and_shares_transactions():
    ctx = _ctx()
    first = AggregationState()
    second = aggregate_step(ctx, first, _row(1, "111", units=[UNIT_A]))
    assert first.last_key is None
    assert second.last_key == "111_2024-01-12"
    assert second.used_rows == 1
    assert second.transactions is first.transactions
    assert list(first.transactions) == ["111_2024-01-12"]


def test_date_in_dst_gap_does_not_fail_the_row():
    rows = [_row(1, "111", date="2024-03-31 01:30", units=[UNIT_A])]
    [txn] = aggregate_rows(rows, _ctx(timezone="Europe/London"))[0]
    assert txn.date == "31 Mar 2024"
