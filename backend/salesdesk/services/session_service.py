# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Bearer-token sessions.

WHY: Every sale, proposal and decision records the user who made it, and
every read is scoped to that user's account. A session pins both at login
so request handlers never have to look them up again.

TOKENS:
- 32 random bytes, sent to the client as 64 hex characters
- only the SHA-256 of the token is stored
- absolute expiry after SESSION_TTL_HOURS; logout revokes
- a session dies with its user or account (deactivation revokes on next use)
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from salesdesk.time_utils import utcnow


@dataclass
class SessionContext:
    """Acting identity for one request."""
    user: User
    session: SessionToken
    account_id: int


def generate_token() -> str:
    """Plaintext bearer token handed to the client; never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user: User) -> tuple[SessionToken, str]:
    """Open a session for an authenticated user. Returns (session, plaintext_token)."""
    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))

    session = SessionToken(
        user_id=user.id,
        account_id=user.account_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - User account is deactivated (is_active=False)
    - Owning account is deactivated
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    user = session.user
    if not user or not user.is_active or not user.account.is_active:
        session.is_revoked = True
        session.revoked_at = now
        db.session.commit()
        return None

    return SessionContext(user=user, session=session, account_id=session.account_id)


def revoke_session(token: str) -> bool:
    """Revoke a session (logout). Returns False if the token was unknown or already revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()
    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
