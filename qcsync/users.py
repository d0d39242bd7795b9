"""Local user list consumed by the login screen."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional

from qcsync.local_store import KeyValueStore
from qcsync.models import User

logger = logging.getLogger(__name__)

USERS_KEY = "qc_users"

DEFAULT_USERS = (
    User(id="1", username="admin", role="admin"),
    User(id="2", username="user", role="user"),
)


class UserRepository:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = threading.Lock()

    def get_users(self) -> List[User]:
        raw = self._store.get_json(USERS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [User.from_dict(entry) for entry in raw if isinstance(entry, dict)]

    def _write(self, users: List[User]) -> None:
        self._store.set_json(USERS_KEY, [user.to_dict() for user in users])

    def save_user(self, user: User) -> None:
        """Insert ``user`` or replace the entry with the same id."""

        with self._lock:
            users = self.get_users()
            for index, existing in enumerate(users):
                if existing.id == user.id:
                    users[index] = user
                    break
            else:
                users.append(user)
            self._write(users)

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self._write([user for user in self.get_users() if user.id != user_id])

    def login(self, username: str) -> Optional[User]:
        """Return the matching active user, seeding the defaults on first use."""

        with self._lock:
            users = self.get_users()
            if not users:
                users = [User.from_dict(user.to_dict()) for user in DEFAULT_USERS]
                self._write(users)
            for index, user in enumerate(users):
                if user.username != username:
                    continue
                if user.status != "active":
                    logger.warning("Login refused for %s user %s", user.status, username)
                    return None
                user.is_online = True
                user.last_login = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
                users[index] = user
                self._write(users)
                return user
        return None

    def logout(self, username: str) -> None:
        with self._lock:
            users = self.get_users()
            for user in users:
                if user.username == username:
                    user.is_online = False
            self._write(users)


__all__ = ["UserRepository", "USERS_KEY", "DEFAULT_USERS"]
