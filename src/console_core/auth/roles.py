"""Role tags and the hierarchy over them.

A principal's stored ``roles`` field is sometimes a bare string and sometimes
a list. ``RoleSet.normalize`` collapses both shapes (and absent values) into
one ordered set at the boundary so nothing downstream branches on type.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Role tags in ascending order of authority."""

    OPERATOR = "operator"
    ADMIN = "admin"
    SUPERUSER = "superuser"


# Single source of the hierarchy. Every "is at least" check goes through it.
ROLE_ORDER: tuple[Role, ...] = (Role.OPERATOR, Role.ADMIN, Role.SUPERUSER)
_RANK: dict[str, int] = {role.value: rank for rank, role in enumerate(ROLE_ORDER)}

ROLE_VALUES = frozenset(_RANK)


def _rank_of(level: Role | str) -> int:
    key = level.value if isinstance(level, Role) else level
    try:
        return _RANK[key]
    except KeyError:
        raise ValueError(f"Unknown role level: {level!r}") from None


def _clean_tag(item: Any) -> str | None:
    if isinstance(item, Role):
        return item.value
    if isinstance(item, str):
        return item.strip() or None
    return None


class RoleSet:
    """Ordered, duplicate-free collection of role tags.

    Position matters only for display (``primary``); equality and every
    permission check are membership based.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[str] = ()) -> None:
        seen: dict[str, None] = {}
        for tag in tags:
            seen.setdefault(tag, None)
        self._tags: tuple[str, ...] = tuple(seen)

    @classmethod
    def normalize(cls, raw: Any) -> "RoleSet":
        """Build a RoleSet from a stored ``roles`` value.

        Accepts a single tag or a list/tuple/set of tags. Non-string and blank
        entries are dropped; anything else (``None``, numbers, maps) yields
        the empty set.
        """
        if isinstance(raw, RoleSet):
            return raw
        if isinstance(raw, (str, Role)):
            raw = [raw]
        if not isinstance(raw, (list, tuple, set, frozenset)):
            return cls()
        tags = (_clean_tag(item) for item in raw)
        return cls(tag for tag in tags if tag)

    @property
    def tags(self) -> tuple[str, ...]:
        return self._tags

    @property
    def primary(self) -> str | None:
        return self._tags[0] if self._tags else None

    @property
    def highest(self) -> str | None:
        """Highest-ranked known tag, used when this set is the *target* of an
        authority comparison. Unknown tags are ignored."""
        known = [tag for tag in self._tags if tag in _RANK]
        if not known:
            return None
        return max(known, key=_RANK.__getitem__)

    def has_at_least(self, level: Role | str) -> bool:
        required = _rank_of(level)
        return any(_RANK.get(tag, -1) >= required for tag in self._tags)

    @property
    def is_operator(self) -> bool:
        return self.has_at_least(Role.OPERATOR)

    @property
    def is_admin(self) -> bool:
        return self.has_at_least(Role.ADMIN)

    @property
    def is_super_user(self) -> bool:
        return self.has_at_least(Role.SUPERUSER)

    def __contains__(self, tag: object) -> bool:
        if isinstance(tag, Role):
            tag = tag.value
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __bool__(self) -> bool:
        return bool(self._tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RoleSet):
            return NotImplemented
        return frozenset(self._tags) == frozenset(other._tags)

    def __hash__(self) -> int:
        return hash(frozenset(self._tags))

    def __repr__(self) -> str:
        return f"RoleSet({list(self._tags)!r})"


def normalize_roles(raw: Any) -> RoleSet:
    return RoleSet.normalize(raw)


def is_operator(roles: Any) -> bool:
    return RoleSet.normalize(roles).is_operator


def is_admin(roles: Any) -> bool:
    return RoleSet.normalize(roles).is_admin


def is_super_user(roles: Any) -> bool:
    return RoleSet.normalize(roles).is_super_user
