"""
Thin requests-based client for the CharityHub JSON API.

Transport errors (requests.RequestException) are not caught here; callers
decide how to surface them. Non-JSON bodies decode to ``{}``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import requests

DEFAULT_TIMEOUT = 12.0


class DonationApiClient:
    def __init__(
        self,
        base: str,
        *,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base = base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"accept": "application/json"}
        self.token = token

    def url(self, path: str) -> str:
        return self.base + (path if path.startswith("/") else "/" + path)

    def _headers(self, auth: bool) -> Dict[str, str]:
        headers = dict(self.headers)
        if auth and self.token:
            headers["Authorization"] = self.token
        return headers

    @staticmethod
    def _decode(r: requests.Response) -> Any:
        try:
            return r.json()
        except ValueError:
            return {}

    def get(self, path: str, *, auth: bool = False) -> Tuple[int, Any]:
        r = self.session.get(self.url(path), headers=self._headers(auth), timeout=self.timeout)
        return r.status_code, self._decode(r)

    def post(self, path: str, payload: Dict[str, Any], *, auth: bool = False) -> Tuple[int, Any]:
        r = self.session.post(self.url(path), json=payload, headers=self._headers(auth), timeout=self.timeout)
        return r.status_code, self._decode(r)

    # -- public endpoints ---------------------------------------------------
    def get_stats(self) -> Dict[str, Any]:
        code, body = self.get("/api/stats")
        if code != 200 or not isinstance(body, dict):
            raise requests.HTTPError(f"/api/stats returned {code}")
        return body

    def get_donors(self) -> List[Dict[str, Any]]:
        code, body = self.get("/api/donors")
        return body if code == 200 and isinstance(body, list) else []

    def donate(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        return self.post("/api/donate", payload)

    def subscribe(self, email: str) -> Tuple[int, Dict[str, Any]]:
        return self.post("/api/newsletter", {"email": email})

    # -- admin --------------------------------------------------------------
    def login(self, password: str) -> bool:
        code, body = self.post("/api/admin/login", {"password": password})
        if code == 200 and body.get("success") and body.get("token"):
            self.token = str(body["token"])
            return True
        return False

    def history(self) -> Tuple[int, Dict[str, Any]]:
        return self.get("/api/admin/history", auth=True)

    def virtual_terminal(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        return self.post("/api/admin/virtual-terminal", payload, auth=True)
