from __future__ import annotations

from typing import Optional


class TokenStore:
    """Holds the bearer token for one session.

    Stands in for the device's secure storage; the GraphQL client reads it
    on every request so a login/logout takes effect immediately.
    """

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)
