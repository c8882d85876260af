import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationDenied, NotFound, ValidationFailed
from app.core.role_cache import RoleCache
from app.core.roles import ROLE_PRECEDENCE, Role, has_role, is_board, parse_role, resolve_effective_role
from app.models.profile import Profile
from app.models.user_role import UserRole
from app.schemas.roles import RoleAssignmentRequest, RoleAssignmentResult, UserRoleOut

logger = logging.getLogger(__name__)

VALID_ACTIONS = ("assign", "revoke")


class RoleResolver:
    """
    Resolves a user's effective role from the `user_roles` table.

    A lookup failure resolves to "no role" so that a database problem can
    never grant access. Successful lookups are cached per user id.
    """

    def __init__(self, db: Session, cache: Optional[RoleCache] = None):
        self.db = db
        self.cache = cache

    def fetch_roles(self, user_id: str) -> List[str]:
        rows = self.db.query(UserRole.role).filter(UserRole.user_id == user_id).all()
        return [row.role for row in rows]

    def resolve(self, user_id: Optional[str]) -> Optional[Role]:
        if not user_id:
            return None

        if self.cache is not None:
            hit, role = self.cache.get(user_id)
            if hit:
                return role

        try:
            roles = self.fetch_roles(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch roles for user {user_id}: {str(e)}")
            return None

        role = resolve_effective_role(roles)
        if self.cache is not None:
            self.cache.set(user_id, role)
        logger.debug(f"Resolved role {role} for user {user_id} from {len(roles)} rows")
        return role

    def has_role(self, user_id: str, target) -> bool:
        return has_role(self.resolve(user_id), target)

    def invalidate(self, user_id: str):
        if self.cache is not None:
            self.cache.invalidate(user_id)


def assign_user_role(
    db: Session,
    caller_role: Optional[Role],
    request: RoleAssignmentRequest,
    cache: Optional[RoleCache] = None,
) -> RoleAssignmentResult:
    """
    Assign or revoke a role for a user. Only board members may call this.

    Assigning a role the user already holds and revoking one they do not hold
    are reported as unsuccessful results, not errors; no duplicate row is
    ever written.
    """
    if not is_board(caller_role):
        raise AuthorizationDenied("Access denied. Only board members can assign roles.")

    if not request.user_id or not request.role or not request.action:
        raise ValidationFailed("Missing required fields: user_id, role, action")

    role = parse_role(request.role)
    if role is None or request.role != role.value:
        names = ", ".join(r.value for r in ROLE_PRECEDENCE[1:])
        raise ValidationFailed(f"Invalid role. Must be: {names}, or {ROLE_PRECEDENCE[0].value}")

    if request.action not in VALID_ACTIONS:
        raise ValidationFailed("Invalid action. Must be: assign or revoke")

    target = db.query(Profile).filter(Profile.id == request.user_id).first()
    if not target:
        raise NotFound("Target user not found")

    if request.action == "assign":
        result = _assign(db, request.user_id, role)
    else:
        result = _revoke(db, request.user_id, role)

    if result.success and cache is not None:
        cache.invalidate(request.user_id)
    logger.info(f"Role {request.action} {role.value} for {request.user_id}: {result.message}")
    return result


def _assign(db: Session, user_id: str, role: Role) -> RoleAssignmentResult:
    existing = db.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.role == role.value
    ).first()
    if existing:
        return RoleAssignmentResult(success=False, message=f"User already has {role.value} role")

    row = UserRole(user_id=user_id, role=role.value)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent assignment won the unique constraint
        db.rollback()
        return RoleAssignmentResult(success=False, message=f"User already has {role.value} role")
    db.refresh(row)

    return RoleAssignmentResult(
        success=True,
        message=f"Successfully assigned {role.value} role to user",
        data=UserRoleOut.model_validate(row),
    )


def _revoke(db: Session, user_id: str, role: Role) -> RoleAssignmentResult:
    rows = db.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.role == role.value
    ).all()
    if not rows:
        return RoleAssignmentResult(success=False, message=f"User does not have {role.value} role to revoke")

    revoked = UserRoleOut.model_validate(rows[0])
    for row in rows:
        db.delete(row)
    db.commit()

    return RoleAssignmentResult(
        success=True,
        message=f"Successfully revoked {role.value} role from user",
        data=revoked,
    )
