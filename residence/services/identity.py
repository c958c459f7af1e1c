"""Identity contract consumed by the governance services."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from residence.models import RoleName

ADMIN_ROLE = RoleName.ADMIN.value
MANAGER_ROLE = RoleName.MANAGER.value
PRIVILEGED_ROLES = frozenset({ADMIN_ROLE, MANAGER_ROLE})


class Principal(Protocol):
    """An authenticated caller: a user id plus the role names it holds."""

    @property
    def id(self) -> str: ...

    @property
    def roles(self) -> frozenset[str]: ...


def has_any_role(held: Iterable[str], wanted: Iterable[str]) -> bool:
    """Return True when ``held`` and ``wanted`` share a role. An empty ``wanted`` allows all."""

    wanted_set = set(wanted)
    if not wanted_set:
        return True
    return not wanted_set.isdisjoint(held)


def is_admin(principal: Principal) -> bool:
    return ADMIN_ROLE in principal.roles


def is_privileged(principal: Principal) -> bool:
    return has_any_role(principal.roles, PRIVILEGED_ROLES)


__all__ = [
    "ADMIN_ROLE",
    "MANAGER_ROLE",
    "PRIVILEGED_ROLES",
    "Principal",
    "has_any_role",
    "is_admin",
    "is_privileged",
]
