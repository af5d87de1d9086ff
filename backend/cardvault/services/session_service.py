# Overview: Service-layer operations for session tokens and impersonation.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout or security events

IMPERSONATION:
An admin acting as another user gets a separate session for the target
user with original_user_id pointing back at the admin. Resource access in
that session is exactly the target user's; the session only additionally
passes the elevated gate (merchant CRUD). Stopping revokes the
impersonation session and issues a fresh session for the admin.
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import SessionToken, User
from ..permissions import allow_elevated
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """Session context returned by validate_session."""
    user: User
    session: SessionToken

    @property
    def is_impersonating(self) -> bool:
        return self.session.original_user_id is not None

    @property
    def is_elevated(self) -> bool:
        return allow_elevated(self.user, self.session)


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    original_user_id: int | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        original_user_id=original_user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is invalid, expired, idle too long or revoked.
    Updates last_used_at on successful validation.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user:
        _revoke(session, "User missing")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def start_impersonation(
    context: SessionContext,
    target_user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session acting as target_user_id on behalf of an admin.

    RULES:
    - Only a real admin session may start impersonating (no nesting)
    - Admins cannot impersonate themselves

    Raises ForbiddenError, ValidationError or NotFoundError.
    """
    if context.is_impersonating:
        raise ForbiddenError("Already impersonating; stop first")
    if not context.user.is_admin:
        raise ForbiddenError()
    if target_user_id == context.user.id:
        raise ValidationError("Cannot impersonate yourself")

    target = db.session.get(User, target_user_id)
    if not target:
        raise NotFoundError("User not found")

    session, token = create_session(
        target.id,
        user_agent=user_agent,
        ip_address=ip_address,
        original_user_id=context.user.id,
    )
    current_app.logger.info(
        "Impersonation started: admin=%s target=%s", context.user.id, target.id
    )
    return session, token


def stop_impersonation(
    context: SessionContext,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    End an impersonation session and return a fresh session for the admin.

    Raises ValidationError when the session is not impersonating.
    """
    if not context.is_impersonating:
        raise ValidationError("Session is not impersonating")

    admin_id = context.session.original_user_id
    _revoke(context.session, "Impersonation stopped")
    db.session.commit()

    current_app.logger.info(
        "Impersonation stopped: admin=%s target=%s", admin_id, context.user.id
    )
    return create_session(admin_id, user_agent=user_agent, ip_address=ip_address)
