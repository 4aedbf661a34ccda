"""
models/policy.py
----------------
The immutable transfer policy and the fixed list of system databases.

Design Decision:
    The policy is a frozen dataclass built once per invocation. Category
    switches are stored as a frozenset of the *included* categories rather
    than one boolean attribute per category, so the enumerator and the
    generator can test membership with a single expression.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from models.objects import ObjectCategory

#: Processing order is fixed: master, then model, then msdb.
SYSTEM_DATABASES: tuple[str, ...] = ("master", "model", "msdb")


def _all_categories() -> frozenset[ObjectCategory]:
    return frozenset(ObjectCategory)


@dataclass(frozen=True)
class TransferPolicy:
    """
    What to copy and how to script it.

    Attributes:
        categories:                  Object categories included in the copy.
        preserve_owner_schema:       Keep objects bound to their source
                                     schema/owner instead of rebinding to dbo.
        include_system_objects:      Also copy objects shipped with the engine.
        include_dependencies:        Pull in objects referenced by selected
                                     ones even when their category is off.
        include_permissions:         Script GRANT/DENY statements.
        include_role_memberships:    Script ALTER ROLE ... ADD MEMBER.
        include_indexes:             Script non-key indexes after each table.
        continue_on_generation_error: Skip an object that cannot be scripted
                                     instead of abandoning the database pass.
        drop_existing:               On an already-exists conflict, drop the
                                     destination object and re-create it.
    """
    categories: frozenset[ObjectCategory] = field(default_factory=_all_categories)
    preserve_owner_schema: bool = True
    include_system_objects: bool = False
    include_dependencies: bool = False
    include_permissions: bool = True
    include_role_memberships: bool = True
    include_indexes: bool = True
    continue_on_generation_error: bool = True
    drop_existing: bool = False

    def includes(self, category: ObjectCategory) -> bool:
        return category in self.categories

    def without(self, *categories: ObjectCategory) -> "TransferPolicy":
        """Return a copy with *categories* switched off."""
        return replace(self, categories=self.categories - frozenset(categories))

    @classmethod
    def from_overrides(
        cls,
        exclude: Iterable[str] = (),
        **flags: bool,
    ) -> "TransferPolicy":
        """
        Build a policy from CLI-style overrides.

        Args:
            exclude: Category names (``ObjectCategory`` values) to switch off.
            flags:   Any boolean attribute of :class:`TransferPolicy`.

        Raises:
            ValueError: On an unknown category or flag name.
        """
        excluded: set[ObjectCategory] = set()
        for name in exclude:
            try:
                excluded.add(ObjectCategory(name.strip().lower()))
            except ValueError:
                valid = ", ".join(c.value for c in ObjectCategory)
                raise ValueError(
                    f"Unknown object category {name!r}. Valid values: {valid}"
                ) from None

        known = {f for f in cls.__dataclass_fields__ if f != "categories"}
        unknown = set(flags) - known
        if unknown:
            raise ValueError(f"Unknown policy flag(s): {', '.join(sorted(unknown))}")

        return cls(categories=_all_categories() - excluded, **flags)
