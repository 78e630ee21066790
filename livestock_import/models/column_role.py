from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Column roles and keyword rules for header resolution.

A ColumnRole names the semantic field a source column carries. Roles are
matched against normalized header text with RoleRule: every rule holds a list
of keyword groups, and a header matches when all words of at least one group
are contained in it (plain substring containment, no stemming).

Singular roles map to one column. Grouped roles describe per-animal columns
that repeat once per unit ("Live Weight 1", "Live Weight 2", ...).
"""

__all__ = [
    "ColumnRole",
    "RoleRule",
    "SHARED_GROUP_ROLES",
]


class ColumnRole(Enum):
    """Closed set of semantic fields a column can be resolved to.

    The value is the field name used in stored documents.
    """
    # Shared singular roles
    NAME = "name"
    ID_NUMBER = "idNumber"
    PHONE = "phone"
    COUNTY = "county"
    SUBCOUNTY = "subcounty"
    LOCATION = "location"
    DATE = "date"
    GENDER = "gender"
    PROGRAMME = "programme"
    REGISTERED_BY = "username"
    OFFTAKE_USER_ID = "offtakeUserId"

    # Farmer registry roles
    FARMER_ID = "farmerId"
    CATTLE = "cattle"
    SHEEP = "sheep"
    VACCINATED = "vaccinated"
    TRACEABILITY = "traceability"
    VACCINES = "vaccines"
    DEWORMED = "dewormed"
    DEWORMING_DATE = "dewormingDate"
    VACCINATION_DATE = "vaccinationDate"
    AGGREGATION_GROUP = "aggregationGroup"
    GOATS_TOTAL = "goatsTotal"
    GOATS_MALE = "goatsMale"
    GOATS_FEMALE = "goatsFemale"

    # Grouped (per-unit) roles
    LIVE_WEIGHT = "live"
    CARCASS_WEIGHT = "carcass"
    PRICE = "price"
    UNIT_COUNT = "unitCount"


# A single un-numbered column of these roles applies to every numbered unit
# that has no column of its own (one "Price" column next to "Live Weight 1..n").
SHARED_GROUP_ROLES = frozenset({ColumnRole.PRICE})


@dataclass(frozen=True)
class RoleRule:
    """Keyword rule for one role.

    Attributes:
        role: Role claimed by a matching header
        keywords: Alternatives; each alternative is a tuple of words that must
            all be contained in the normalized header
    """
    role: ColumnRole
    keywords: tuple[tuple[str, ...], ...]

    @classmethod
    def any_of(cls, role: ColumnRole, *phrases: str) -> RoleRule:
        """Rule matching when any single phrase is contained in the header."""
        return cls(role, tuple((p,) for p in phrases))

    def matches(self, normalized_header: str) -> bool:
        if not normalized_header:
            return False
        return any(
            all(word in normalized_header for word in group)
            for group in self.keywords
        )
