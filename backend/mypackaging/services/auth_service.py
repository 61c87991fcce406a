# Overview: Service-layer operations for auth; password hashing, login, and operator re-authentication.

"""
Authentication Service

WHY: Every ledger write is attributed to an operator, and destructive
operations (deleting a sale, purchase or return, overriding a stock count)
require the operator to re-enter their password.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_LOG_ROUNDS)
- Minimum 8 characters, with uppercase, lowercase, digit and special char
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt
from flask import current_app

from ..errors import AuthorizationError
from ..extensions import db
from ..models import Role, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt. Stored as a string."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. A malformed stored hash never matches."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def create_user(email: str, password: str, role: str = Role.STAFF.value, display_name: str | None = None) -> User:
    """
    Create a new operator account.

    Raises:
        ValueError: email missing, already taken, or unknown role
        PasswordValidationError: password doesn't meet requirements
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required")

    try:
        role = Role(role).value
    except ValueError:
        raise ValueError(f"Unknown role: {role}")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ValueError("A user with this email already exists")

    user = User(
        email=email,
        display_name=display_name or email.split("@")[0],
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def get_user_by_email(email: str) -> User | None:
    email = (email or "").strip().lower()
    if not email:
        return None
    return db.session.query(User).filter_by(email=email).first()


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials for login.

    Returns the User if valid (and stamps last_login_at), None otherwise.
    """
    user = get_user_by_email(email)
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def reauthenticate(identity: str, password: str) -> User:
    """
    Confirm the acting operator's password before a destructive operation.

    Raises AuthorizationError on any mismatch; nothing is written.
    """
    user = get_user_by_email(identity)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        logger.warning("Re-authentication failed for %s", identity)
        raise AuthorizationError("Password confirmation failed")
    return user


def require_role(user: User | None, minimum: Role) -> None:
    if user is None or not user.has_role(minimum):
        raise AuthorizationError(f"This action requires the {minimum.value} role")
