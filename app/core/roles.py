"""
Role precedence rules shared by the API, the chat relay and the access guard.

Precedence is fixed: board > administrator > executive. A user may hold
several role rows; the effective role is the most privileged one present.
"""
import enum
from typing import Iterable, Optional


class Role(str, enum.Enum):
    BOARD = "board"
    ADMINISTRATOR = "administrator"
    EXECUTIVE = "executive"


# Index 0 is the most privileged role
ROLE_PRECEDENCE = [Role.BOARD, Role.ADMINISTRATOR, Role.EXECUTIVE]
TOP_ROLE = ROLE_PRECEDENCE[0]

# Roles a policy document can be assigned to
ASSIGNABLE_DOCUMENT_ROLES = {Role.ADMINISTRATOR, Role.EXECUTIVE}


def parse_role(value) -> Optional[Role]:
    """Map a raw role value to a Role, or None when it is not a known role."""
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return None


def precedence_index(role) -> Optional[int]:
    parsed = parse_role(role)
    if parsed is None:
        return None
    return ROLE_PRECEDENCE.index(parsed)


def resolve_effective_role(roles: Iterable) -> Optional[Role]:
    """
    Pick the single highest-precedence role out of any number of role values.
    Unknown values are ignored; an empty input resolves to None.
    """
    held = {parse_role(r) for r in roles}
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return None


def has_role(caller_role, target_role) -> bool:
    """True when the caller's role is at least as privileged as the target."""
    caller_index = precedence_index(caller_role)
    target_index = precedence_index(target_role)
    if caller_index is None or target_index is None:
        return False
    return caller_index <= target_index


def is_administrator(caller_role) -> bool:
    return has_role(caller_role, Role.ADMINISTRATOR)


def is_executive(caller_role) -> bool:
    return parse_role(caller_role) == Role.EXECUTIVE


def is_board(caller_role) -> bool:
    return parse_role(caller_role) == TOP_ROLE
