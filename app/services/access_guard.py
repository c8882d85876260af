from dataclasses import dataclass
from typing import Optional

from app.core.exceptions import AuthorizationDenied
from app.core.roles import is_board, parse_role

GENERIC_DENIAL = "Access denied: You do not have permission to access this policy document."


@dataclass
class AccessDecision:
    allowed: bool
    message: Optional[str] = None


def can_access_document(caller_role, role_assignment) -> bool:
    """
    Board members reach every document. Everyone else needs a role that
    equals the document's assignment exactly; hierarchy does not apply here.
    """
    if is_board(caller_role):
        return True
    caller = parse_role(caller_role)
    if caller is None:
        return False
    return caller == parse_role(role_assignment)


def check_access(caller_role, role_assignment) -> AccessDecision:
    if can_access_document(caller_role, role_assignment):
        return AccessDecision(allowed=True)

    caller = parse_role(caller_role)
    if role_assignment and caller is not None:
        return AccessDecision(
            allowed=False,
            message=(
                f"Access denied: This policy document is assigned to {role_assignment} role, "
                f"but you have {caller.value} role."
            ),
        )
    return AccessDecision(allowed=False, message=GENERIC_DENIAL)


def require_document_access(caller_role, document) -> None:
    """Raise AuthorizationDenied unless the caller may use `document`."""
    decision = check_access(caller_role, document.role_assignment)
    if not decision.allowed:
        raise AuthorizationDenied(decision.message)
