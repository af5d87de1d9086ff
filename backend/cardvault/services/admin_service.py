# Overview: Service-layer operations for user administration (listing, creation, roles).

"""
Admin Service

User administration for admins. Callers must have passed require_admin;
impersonation sessions never reach these functions.

RULES (role changes):
- Roles are "user" or "admin"
- An admin cannot change their own role (no accidental lock-out)
- OAuth users' roles are not editable here
- Every change writes one "role_change" audit entry with the old and new
  role, committed together with the change
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, UnsupportedOperationError, ValidationError
from ..models import User
from ..models.users import VALID_ROLES
from . import audit_service, auth_service
from .concurrency import flush_or_conflict


MAX_PER_PAGE = 200


def list_users(
    search: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[User], int]:
    """Users ordered by email, optionally filtered by email or name."""
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    page = max(1, page)

    query = db.session.query(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))

    total = query.count()
    users = query.order_by(User.email).limit(per_page).offset((page - 1) * per_page).all()
    return users, total


def create_local_user(
    actor_user_id: int,
    email: str,
    password: str,
    first_name: str = "",
    last_name: str = "",
    role: str = "user",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> User:
    """
    Create a local account on someone's behalf.

    Raises UnsupportedOperationError when local login is disabled.
    """
    if not current_app.config.get("ENABLE_LOCAL_LOGIN", True):
        raise UnsupportedOperationError("Local login is disabled")

    user = auth_service.build_user(email, password, first_name, last_name, role)
    flush_or_conflict("Email is already registered")

    audit_service.record(
        actor_user_id,
        audit_service.ACTION_CREATE,
        "users",
        user.id,
        {"email": user.email, "role": user.role},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.commit()
    return user


def update_user_role(
    actor: User,
    target_user_id: int,
    role: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> User:
    if role not in VALID_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(sorted(VALID_ROLES))}")

    target = db.session.get(User, target_user_id)
    if target is None:
        raise NotFoundError("User not found")
    if target.id == actor.id:
        raise ForbiddenError("Cannot change your own role")
    if target.is_oauth_user:
        raise ForbiddenError("Roles of OAuth users are managed by their identity provider")

    old_role = target.role
    if old_role == role:
        return target

    target.role = role
    audit_service.record(
        actor.id,
        audit_service.ACTION_ROLE_CHANGE,
        "users",
        target.id,
        {"email": target.email, "old_role": old_role, "new_role": role},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.commit()

    current_app.logger.info(
        "Role change: user=%s %s -> %s (actor=%s)", target.id, old_role, role, actor.id
    )
    return target
