# Overview: Explicit per-user session context for API clients.

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ClientSession:
    """
    Who is talking to which server.

    Passed explicitly to the API client and UI controllers instead of living
    in a module global, so two sessions (e.g. two organizations) can coexist
    in one process.
    """
    base_url: str
    token: str | None = None
    org_id: int | None = None
    user_id: int | None = None
    username: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def apply_login(self, data: dict) -> None:
        """Store the identity returned by POST /api/auth/login."""
        user = data.get("user") or {}
        self.token = data.get("token")
        self.org_id = data.get("org_id")
        self.user_id = user.get("id")
        self.username = user.get("username")

    def clear(self) -> None:
        self.token = None
        self.org_id = None
        self.user_id = None
        self.username = None
