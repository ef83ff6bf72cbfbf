from __future__ import annotations

import re
import threading
import uuid
from typing import Any

import bcrypt

from ..errors import Conflict, NotFound, ValidationError

SUPPORTED_PROVIDERS = ("google",)

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,30}$")
_EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

_users: dict[str, dict[str, Any]] = {}
_lock = threading.Lock()


def _hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def _verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def _public(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["id"],
        "email": record["email"],
        "username": record["username"],
        "role": record["role"],
    }


def password_problems(password: str) -> list[str]:
    """Every password-policy rule the password breaks (empty when it passes)."""
    problems = []
    if len(password) < 8:
        problems.append("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain a lowercase letter")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain an uppercase letter")
    if not re.search(r"\d", password):
        problems.append("Password must contain a number")
    if not re.search(r"\W|_", password):
        problems.append("Password must contain a special character")
    return problems


def _validate_registration(email: str, username: str, password: str) -> None:
    errors = []
    if not _EMAIL_RE.match(email):
        errors.append("Please enter a valid email")
    if not _USERNAME_RE.match(username):
        errors.append("Username must be 3-30 letters, numbers or underscores")
    errors.extend(password_problems(password))
    if errors:
        raise ValidationError("Validation failed", errors=errors)


def _create(email: str, username: str, password: str | None, role: str) -> dict[str, Any]:
    record = {
        "id": uuid.uuid4().hex,
        "email": email,
        "username": username,
        "password_hash": _hash_password(password) if password else None,
        "role": role,
        "identities": {},
    }
    _users[record["id"]] = record
    return record


def register(email: str, username: str, password: str, role: str = "user") -> dict[str, Any]:
    """Create a user. Returns ``{id, email, username, role}``."""
    email = email.strip().lower()
    username = username.strip()
    _validate_registration(email, username, password)
    with _lock:
        for record in _users.values():
            if record["email"] == email or record["username"] == username:
                raise Conflict("User already exists")
        record = _create(email, username, password, role)
    return _public(record)


def authenticate(email: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns the public user dict or ``None``."""
    record = _find_by_email(email)
    if record and record["password_hash"] and _verify_password(password, record["password_hash"]):
        return _public(record)
    return None


def _find_by_email(email: str) -> dict[str, Any] | None:
    email = email.strip().lower()
    for record in _users.values():
        if record["email"] == email:
            return record
    return None


def get_user(user_id: str) -> dict[str, Any] | None:
    record = _users.get(user_id)
    return _public(record) if record else None


def get_user_by_email(email: str) -> dict[str, Any] | None:
    record = _find_by_email(email)
    return _public(record) if record else None


def link_identity(user_id: str, provider: str, provider_id: str) -> dict[str, Any]:
    """Attach an OAuth identity (e.g. a Google account id) to a user."""
    if provider not in SUPPORTED_PROVIDERS:
        raise ValidationError(f"Unsupported auth provider: {provider}")
    with _lock:
        record = _users.get(user_id)
        if record is None:
            raise NotFound("User not found")
        owner = find_by_identity(provider, provider_id)
        if owner and owner["id"] != user_id:
            raise Conflict("Identity already linked to another user")
        record["identities"][provider] = provider_id
    return _public(record)


def find_by_identity(provider: str, provider_id: str) -> dict[str, Any] | None:
    for record in _users.values():
        if record["identities"].get(provider) == provider_id:
            return _public(record)
    return None


def _seed_users() -> None:
    """Pre-seed demo users on import."""
    _create("user@example.com", "demo_user", "User123!", "user")
    _create("admin@example.com", "demo_admin", "Admin123!", "admin")


_seed_users()
