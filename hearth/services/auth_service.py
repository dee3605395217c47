import json
import logging
from collections.abc import Iterable
from dataclasses import replace

from hearth.db.models import User

logger = logging.getLogger(__name__)


def public_user(user: User) -> User:
    return replace(user, password=None)


def find_user(users: Iterable[User], user_id: str | None) -> User | None:
    """Current record for ``user_id`` without its password, or None if it is gone."""
    if user_id is None:
        return None
    for user in users:
        if user.id == user_id:
            return public_user(user)
    return None


def login(users: Iterable[User], username: str, password: str) -> User | None:
    """Check credentials. Usernames match case-insensitively, passwords exactly."""
    wanted = username.strip().lower()
    for user in users:
        if user.username.lower() == wanted:
            if user.password is not None and user.password == password:
                logger.info("Login succeeded", extra={"user_id": user.id})
                return public_user(user)
            break
    logger.warning("Login rejected for %r", username)
    return None


def encode_session(user: User) -> str:
    return json.dumps({"id": user.id, "username": user.username})


def decode_session(raw: str | None) -> str | None:
    """User id from a stored session; anything unreadable counts as logged out.

    Role and house assignments are never taken from the payload. The caller
    looks the id up in the current user collection.
    """
    if not raw:
        return None
    try:
        user_id = json.loads(raw)["id"]
    except (json.JSONDecodeError, TypeError, KeyError):
        logger.warning("Discarding unreadable session", exc_info=True)
        return None
    if not isinstance(user_id, str) or not user_id:
        logger.warning("Discarding incomplete session")
        return None
    return user_id
