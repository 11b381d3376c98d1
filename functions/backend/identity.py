"""
Identity provider access: resolving the calling user and mirroring the
profile photo onto the identity record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from firebase_admin import auth

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def get_current_user_id(self, token: Optional[str]) -> Optional[str]:
        ...

    def has_user(self, user_id: str) -> bool:
        ...

    def update_profile_reference(self, user_id: str, url: str) -> None:
        ...


@dataclass
class InMemoryIdentityProvider:
    """
    Test double. Tokens are the user ids themselves; `users` maps a user id
    to its identity record.
    """

    users: dict = field(default_factory=dict)

    def get_current_user_id(self, token: Optional[str]) -> Optional[str]:
        return token or None

    def has_user(self, user_id: str) -> bool:
        return user_id in self.users

    def update_profile_reference(self, user_id: str, url: str) -> None:
        if user_id not in self.users:
            raise KeyError(user_id)
        self.users[user_id]["photo_url"] = url


class FirebaseIdentityProvider:
    """Firebase Authentication via the Admin SDK."""

    def __init__(self, app: Any = None):
        self.app = app

    def get_current_user_id(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            decoded = auth.verify_id_token(token, app=self.app)
        except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, ValueError) as e:
            logger.info("Rejected ID token: %s", e)
            return None
        return decoded.get("uid")

    def has_user(self, user_id: str) -> bool:
        try:
            auth.get_user(user_id, app=self.app)
        except auth.UserNotFoundError:
            return False
        return True

    def update_profile_reference(self, user_id: str, url: str) -> None:
        auth.update_user(user_id, photo_url=url, app=self.app)
