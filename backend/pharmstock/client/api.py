# Overview: httpx client for the pharmacy stock API; maps HTTP failures to typed errors.

"""
PharmStock API client

Thin wrapper over httpx.Client. Every call returns the decoded JSON body on
success and raises one of the errors below otherwise:

- 400 -> ValidationError (with per-field messages when the server sent them)
- 401 -> AuthError
- 409 -> ConflictError
- anything else, or a transport failure -> ApiError
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .session import ClientSession


class ApiError(Exception):
    """Request failed; status is None for transport-level failures."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[dict] = None):
        super().__init__(message)
        self.status = status
        self.body = body or {}


class ValidationError(ApiError):
    def __init__(self, message: str, status: Optional[int] = 400, body: Optional[dict] = None,
                 fields: Optional[Dict[str, str]] = None):
        super().__init__(message, status, body)
        self.fields = dict(fields if fields is not None else self.body.get("fields") or {})


class AuthError(ApiError):
    pass


class ConflictError(ApiError):
    pass


_ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthError,
    409: ConflictError,
}


class PharmStockClient:
    """
    HTTP client bound to one ClientSession.

    `transport` lets tests run against the Flask app in-process
    (httpx.WSGITransport(app=app)).
    """

    def __init__(
        self,
        session: ClientSession,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.session = session
        self.client = httpx.Client(
            base_url=session.base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "PharmStockClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self.client.request(method, path, headers=self.session.headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ApiError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success:
            return body

        message = body.get("error") if isinstance(body, dict) else None
        error_cls = _ERRORS_BY_STATUS.get(response.status_code, ApiError)
        raise error_cls(message or f"HTTP {response.status_code}", response.status_code, body)

    # ------------------------------------------------------------------ auth

    def login(self, username: str, password: str, org_id: Optional[int] = None) -> dict:
        payload: Dict[str, Any] = {"username": username, "password": password}
        if org_id is not None:
            payload["org_id"] = org_id
        data = self._request("POST", "/api/auth/login", json=payload)
        self.session.apply_login(data)
        return data

    def logout(self) -> None:
        if not self.session.is_authenticated:
            return
        self._request("POST", "/api/auth/logout")
        self.session.clear()

    # ----------------------------------------------------------------- drugs

    def check_code(self, code: str) -> dict:
        return self._request("GET", "/api/drugs/check-code", params={"code": code})

    def check_code_for_edit(self, code: str, *, exclude_id: int, price) -> dict:
        """Edit-path check: `conflict` is true only for a different row at (code, price)."""
        params = {"code": code, "exclude_id": exclude_id, "price": str(price)}
        return self._request("GET", "/api/drugs/check-code", params=params)

    def check_codes(self, codes: List[str]) -> dict:
        return self._request("POST", "/api/drugs/check-codes", json={"codes": codes})

    def create_drug(self, payload: dict) -> dict:
        return self._request("POST", "/api/drugs", json=payload)

    def list_drugs(self, **params) -> List[dict]:
        query = {k: v for k, v in params.items() if v is not None}
        return self._request("GET", "/api/drugs", params=query)["data"]

    def update_drug(self, drug_id: int, patch: dict) -> dict:
        return self._request("PATCH", f"/api/drugs/{drug_id}", json=patch)

    def delete_drug(self, drug_id: int) -> dict:
        return self._request("DELETE", f"/api/drugs/{drug_id}")

    # ----------------------------------------------------------------- stock

    def list_stock(self, department: Optional[str] = None) -> List[dict]:
        params = {"department": department} if department else None
        return self._request("GET", "/api/stock", params=params)["data"]

    def adjust_stock(self, payload: dict) -> dict:
        return self._request("POST", "/api/stock/adjust", json=payload)
