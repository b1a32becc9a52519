# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every sale, proposal and decision must be attributable to a user.
Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Session tokens managed separately (see session_service.py)
- Authentication fails for inactive users and inactive accounts
"""

import logging

import bcrypt
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Account, User
from ..permissions import ROLES
from salesdesk.time_utils import utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    WHY: Cost factor 12 provides good security/performance balance.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_account(name: str) -> Account:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Account name is required")
    account = Account(name=name, is_active=True)
    db.session.add(account)
    db.session.commit()
    logger.info("Account %s created (%s)", account.id, name)
    return account


def create_user(account_id: int, username: str, password: str, role: str = "worker") -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        NotFoundError: account does not exist
        ValidationError: bad role, blank username or short password
        ConflictError: username already taken
    """
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    if not account.is_active:
        raise ValidationError("Account is not active")

    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError("Username already exists")

    user = User(
        account_id=account_id,
        username=username,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User %s (%s) created in account %s", user.id, role, account_id)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user by username and password.

    Returns User if credentials valid and both user and account are active,
    None otherwise.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter_by(username=username.strip()).first()
    if not user or not user.is_active:
        return None
    if not user.account or not user.account.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
