from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from ..models.column_map import ColumnMap
from ..models.column_role import ColumnRole, RoleRule
from .reader import MissingIdentityColumnError

"""Header normalization and column role resolution.

normalize_header turns free-text header cells into comparable tokens.
resolve_columns maps tokens to roles:

1. Grouped rules run first over every header. A header matching a grouped
   rule is bucketed by its first embedded digit run ("live weight 2" -> unit
   2). An un-numbered match becomes unit 0 only when the role has no numbered
   columns; otherwise it is claimed and ignored.
2. Singular rules run in list order; each takes the first unclaimed header
   it matches, and that header is then claimed.

The rule lists below are the documented priority order. More specific rules
come first so that e.g. "sub county" is claimed by SUBCOUNTY before COUNTY
sees it, and "username" by REGISTERED_BY before NAME.
"""

__all__ = [
    "normalize_header",
    "normalize_headers",
    "resolve_columns",
    "require_roles",
    "GROUPED_RULES",
    "OFFTAKE_RULES",
    "FARMER_RULES",
]

_BOM = "\ufeff"
_BRACKETED = re.compile(r"\(.*?\)")
_DISALLOWED = re.compile(r"[^a-z0-9 ]")
_WHITESPACE = re.compile(r"\s+")
_DIGITS = re.compile(r"\d+")


def normalize_header(text: str) -> str:
    """Canonicalize one header cell.

    BOM stripped, trimmed, lower-cased, bracketed annotations removed,
    characters outside [a-z0-9 ] removed, whitespace runs collapsed.
    Idempotent: normalize_header(normalize_header(x)) == normalize_header(x).
    """
    value = text.lstrip(_BOM).strip().lower()
    value = _BRACKETED.sub("", value)
    value = _DISALLOWED.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def normalize_headers(cells: Iterable[str]) -> list[str]:
    return [normalize_header(c) for c in cells]


GROUPED_RULES: tuple[RoleRule, ...] = (
    RoleRule.any_of(ColumnRole.LIVE_WEIGHT, "live weight", "liveweight", "live wt"),
    RoleRule.any_of(ColumnRole.CARCASS_WEIGHT, "carcass"),
    RoleRule.any_of(ColumnRole.PRICE, "price"),
    RoleRule(ColumnRole.UNIT_COUNT, (("goat", "number"), ("goat", "no"))),
)

_ID_NUMBER_RULE = RoleRule(
    ColumnRole.ID_NUMBER, (("id", "number"), ("idnumber",), ("id", "no"))
)

OFFTAKE_RULES: tuple[RoleRule, ...] = (
    RoleRule.any_of(ColumnRole.OFFTAKE_USER_ID, "offtake user id", "user id"),
    RoleRule.any_of(ColumnRole.REGISTERED_BY, "username", "user name", "field officer", "created by", "user"),
    _ID_NUMBER_RULE,
    RoleRule.any_of(ColumnRole.PHONE, "phone number", "phone", "mobile"),
    RoleRule.any_of(ColumnRole.DATE, "date"),
    RoleRule.any_of(ColumnRole.NAME, "farmer name", "name"),
    RoleRule.any_of(ColumnRole.GENDER, "gender", "sex"),
    RoleRule.any_of(ColumnRole.SUBCOUNTY, "subcounty", "sub county"),
    RoleRule.any_of(ColumnRole.COUNTY, "county", "region"),
    RoleRule.any_of(ColumnRole.LOCATION, "location", "village"),
    RoleRule.any_of(ColumnRole.PROGRAMME, "programme", "program"),
)

FARMER_RULES: tuple[RoleRule, ...] = (
    RoleRule.any_of(ColumnRole.REGISTERED_BY, "field officer", "officer", "created by", "username"),
    RoleRule.any_of(ColumnRole.FARMER_ID, "farmer id"),
    _ID_NUMBER_RULE,
    RoleRule.any_of(ColumnRole.PHONE, "phone"),
    RoleRule.any_of(ColumnRole.DEWORMING_DATE, "deworming date", "deworm date"),
    RoleRule.any_of(ColumnRole.VACCINATION_DATE, "vaccination date", "vaccine date", "vax date"),
    RoleRule.any_of(ColumnRole.DATE, "registration date", "reg date", "date"),
    RoleRule.any_of(ColumnRole.VACCINATED, "vaccinated"),
    RoleRule.any_of(ColumnRole.VACCINES, "vaccine"),
    RoleRule.any_of(ColumnRole.DEWORMED, "dewormed"),
    RoleRule.any_of(ColumnRole.TRACEABILITY, "traceability"),
    RoleRule.any_of(ColumnRole.AGGREGATION_GROUP, "aggregation group", "group"),
    RoleRule.any_of(ColumnRole.NAME, "farmer name", "name"),
    RoleRule.any_of(ColumnRole.GENDER, "gender"),
    RoleRule.any_of(ColumnRole.SUBCOUNTY, "subcounty", "sub county"),
    RoleRule.any_of(ColumnRole.COUNTY, "county"),
    RoleRule.any_of(ColumnRole.LOCATION, "location"),
    RoleRule.any_of(ColumnRole.CATTLE, "cattle"),
    RoleRule.any_of(ColumnRole.SHEEP, "sheep"),
    # "female" contains "male": female must claim its column first
    RoleRule.any_of(
        ColumnRole.GOATS_FEMALE, "female goats", "female goat", "goat female", "goats f", "f goats",
        "goatsfemale", "female",
    ),
    RoleRule.any_of(
        ColumnRole.GOATS_MALE, "male goats", "male goat", "goat male", "goats m", "m goats",
        "goatsmale", "male",
    ),
    RoleRule.any_of(
        ColumnRole.GOATS_TOTAL, "goats total", "total goats", "no of goats", "number of goats",
        "goats number", "goat count", "total goat", "goats",
    ),
)


def _unit_number(header: str) -> int | None:
    match = _DIGITS.search(header)
    return int(match.group(0)) if match else None


def _resolve_grouped(
    headers: Sequence[str], rules: Sequence[RoleRule], claimed: set[int]
) -> dict[int, dict[ColumnRole, int]]:
    numbered: dict[ColumnRole, dict[int, int]] = {}
    unnumbered: dict[ColumnRole, int] = {}
    for idx, header in enumerate(headers):
        rule = next((r for r in rules if r.matches(header)), None)
        if rule is None:
            continue
        claimed.add(idx)
        unit = _unit_number(header)
        if unit is None:
            unnumbered.setdefault(rule.role, idx)
        else:
            numbered.setdefault(rule.role, {}).setdefault(unit, idx)

    units: dict[int, dict[ColumnRole, int]] = {}
    for role, by_unit in numbered.items():
        for unit, idx in by_unit.items():
            units.setdefault(unit, {})[role] = idx
    for role, idx in unnumbered.items():
        if role not in numbered:
            units.setdefault(0, {})[role] = idx
    return units


def resolve_columns(
    headers: Sequence[str],
    rules: Sequence[RoleRule],
    grouped_rules: Sequence[RoleRule] = (),
) -> ColumnMap:
    """Resolve normalized headers into a ColumnMap.

    Args:
        headers: Output of normalize_headers for the header row
        rules: Singular rules, in priority order
        grouped_rules: Per-unit rules (empty for flat imports)
    """
    claimed: set[int] = set()
    units = _resolve_grouped(headers, grouped_rules, claimed) if grouped_rules else {}

    singular: dict[ColumnRole, int] = {}
    for rule in rules:
        if rule.role in singular:
            continue
        for idx, header in enumerate(headers):
            if idx in claimed:
                continue
            if rule.matches(header):
                singular[rule.role] = idx
                claimed.add(idx)
                break

    return ColumnMap(headers=tuple(headers), singular=singular, units=units)


def require_roles(column_map: ColumnMap, roles: Iterable[ColumnRole], source: str) -> None:
    """Fail when a required singular role is absent from the header."""
    missing = [role for role in roles if not column_map.has(role)]
    if missing:
        names = ", ".join(role.value for role in missing)
        raise MissingIdentityColumnError(f"'{source}' is missing required column(s): {names}")
