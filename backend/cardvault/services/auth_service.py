# Overview: Service-layer operations for auth; password hashing, registration and login.

"""
Authentication Service

WHY: Every mutation must be attributable to a user. Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special character
- OAuth accounts have no password hash and cannot log in locally
- Emails are matched case-insensitively (stored lowercase)
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import User
from ..models.users import ROLE_ADMIN, ROLE_USER, VALID_ROLES, AUTH_LOCAL
from ..time_utils import utcnow
from .concurrency import flush_or_conflict


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for accounts without a local password (OAuth users).
    """
    if not password_hash or not password:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise ValidationError("A valid email address is required")
    return value


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(User.email == (email or "").strip().lower()).first()


def build_user(
    email: str,
    password: str,
    first_name: str = "",
    last_name: str = "",
    role: str | None = None,
) -> User:
    """
    Validate and add a local user to the session without committing.

    role defaults to "user", or "admin" when the email is listed in
    ADMIN_EMAILS.

    Raises:
        ValidationError / PasswordValidationError: bad email, weak password or role
        ConflictError: email already registered
    """
    email = normalize_email(email)

    if get_user_by_email(email):
        raise ConflictError("Email is already registered")

    if role is None:
        admin_emails = current_app.config.get("ADMIN_EMAILS") or []
        role = ROLE_ADMIN if email in admin_emails else ROLE_USER
    if role not in VALID_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(sorted(VALID_ROLES))}")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip(),
        last_name=(last_name or "").strip(),
        role=role,
        auth_provider=AUTH_LOCAL,
    )
    db.session.add(user)
    return user


def create_user(
    email: str,
    password: str,
    first_name: str = "",
    last_name: str = "",
    role: str | None = None,
) -> User:
    """Create and commit a local user (self-registration, CLI)."""
    user = build_user(email, password, first_name, last_name, role)
    flush_or_conflict("Email is already registered")
    db.session.commit()

    current_app.logger.info("Created user %s (role=%s)", user.id, user.role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = get_user_by_email(email)
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
