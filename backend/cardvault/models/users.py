from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_USER = "user"
ROLE_ADMIN = "admin"
VALID_ROLES = {ROLE_USER, ROLE_ADMIN}

AUTH_LOCAL = "local"
AUTH_OAUTH = "oauth"


class User(db.Model):
    """
    User accounts for authentication, ownership and attribution.

    Emails are stored lowercase so share lookups by email are
    case-insensitive. Users are never hard-deleted; audit entries keep a
    nullable reference to them.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hash; NULL for accounts created through OAuth
    password_hash = db.Column(db.String(255), nullable=True)

    first_name = db.Column(db.String(128), nullable=False, default="")
    last_name = db.Column(db.String(128), nullable=False, default="")

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)
    auth_provider = db.Column(db.String(16), nullable=False, default=AUTH_LOCAL)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_oauth_user(self) -> bool:
        return self.auth_provider == AUTH_OAUTH

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "role": self.role,
            "auth_provider": self.auth_provider,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_public_dict(self) -> dict:
        """Identity shown to other users (share lists)."""
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
        }
