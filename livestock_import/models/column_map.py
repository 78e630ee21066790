from __future__ import annotations

from dataclasses import dataclass, field

from .column_role import SHARED_GROUP_ROLES, ColumnRole

"""ColumnMap model: resolved association between roles and column indices.

Produced once per file from the header row and consulted for every data row.
"""

__all__ = [
    "ColumnMap",
]


@dataclass(frozen=True)
class ColumnMap:
    """Resolved column roles for one header row.

    Attributes:
        headers: Normalized header tokens, in column order
        singular: Singular role -> column index
        units: Unit index -> grouped role -> column index. Unit 0 holds
            un-numbered grouped columns
    """
    headers: tuple[str, ...]
    singular: dict[ColumnRole, int] = field(default_factory=dict)
    units: dict[int, dict[ColumnRole, int]] = field(default_factory=dict)

    def index_of(self, role: ColumnRole) -> int | None:
        return self.singular.get(role)

    def has(self, role: ColumnRole) -> bool:
        return role in self.singular

    @property
    def is_grouped(self) -> bool:
        """True when at least one numbered unit column was discovered."""
        return any(unit != 0 for unit in self.units)

    @property
    def unit_indices(self) -> list[int]:
        """Units to build per row, ascending.

        Numbered units when any exist; otherwise the single legacy unit 0
        (if any grouped column was found at all).
        """
        numbered = sorted(unit for unit in self.units if unit != 0)
        if numbered:
            return numbered
        return [0] if 0 in self.units else []

    def unit_columns(self, unit: int) -> dict[ColumnRole, int]:
        """Grouped role -> column index for one unit, with shared fallbacks."""
        columns = dict(self.units.get(unit, {}))
        if unit != 0:
            shared = self.units.get(0, {})
            for role in SHARED_GROUP_ROLES:
                if role not in columns and role in shared:
                    columns[role] = shared[role]
        return columns
