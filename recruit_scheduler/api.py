import logging
from typing import Any, Dict, Optional

import requests

from .exceptions import NetworkError, RemoteError


logger = logging.getLogger(__name__)

GENERIC_ERROR = "Request failed"


class ApiClient:
    """Thin JSON client for the recruiting backend.

    Every non-2xx answer becomes a RemoteError carrying the server's
    ``error`` message when there is one. Requests that never complete become
    NetworkError, which callers may handle exactly like RemoteError.
    """

    def __init__(self, base_url: str, token: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, endpoint: str, *, json: Any = None,
                params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        logger.debug("%s %s", method, url)

        try:
            response = self.session.request(
                method, url, json=json, params=params, headers=self._headers()
            )
        except requests.RequestException as e:
            raise NetworkError(f"Could not reach the server: {e}")

        if not response.ok:
            raise RemoteError(self._error_message(response), status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            raise RemoteError("Server returned an invalid response", status_code=response.status_code)

    @staticmethod
    def _error_message(response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return GENERIC_ERROR
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
        return GENERIC_ERROR

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Any = None) -> Any:
        return self.request("POST", endpoint, json=data)

    def put(self, endpoint: str, data: Any = None) -> Any:
        return self.request("PUT", endpoint, json=data)

    def patch(self, endpoint: str, data: Any = None) -> Any:
        return self.request("PATCH", endpoint, json=data)

    def delete(self, endpoint: str) -> Any:
        return self.request("DELETE", endpoint)
