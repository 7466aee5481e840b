"""
Minimal asynchronous WebDriver/Appium HTTP client.

Speaks the W3C WebDriver wire protocol (plus the Appium locator extensions)
over aiohttp, which is all the session backend needs from a device server.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import aiohttp

# W3C element reference key, with the legacy JSONWP key as fallback.
ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"
LEGACY_ELEMENT_KEY = "ELEMENT"


class WebDriverError(Exception):
    """Error response returned by a WebDriver server."""

    def __init__(self, message: str, error: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.error = error
        self.status = status

    @property
    def is_no_such_element(self) -> bool:
        return self.error == "no such element"


class WebDriverClient:
    """
    Thin async wrapper for WebDriver endpoints.

    One client owns at most one session at a time.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session_id: Optional[str] = None
        self._http: Optional[aiohttp.ClientSession] = None

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._http

    def _session_path(self, path: str) -> str:
        if not self.session_id:
            raise WebDriverError("No active WebDriver session", error="invalid session id")
        return f"/session/{self.session_id}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        http = self._get_http()
        self.logger.debug(f"WebDriver {method} {path}")

        async with http.request(method, url, json=payload) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = {"value": await response.text()}

            value = body.get("value") if isinstance(body, dict) else body
            if response.status >= 400:
                error = value.get("error") if isinstance(value, dict) else None
                message = value.get("message") if isinstance(value, dict) else str(value)
                raise WebDriverError(
                    f"{method} {path} failed ({response.status}): {message}",
                    error=error,
                    status=response.status,
                )
            return value

    async def status(self) -> Dict[str, Any]:
        """Query the server status endpoint."""
        return await self._request("GET", "/status")

    async def create_session(self, capabilities: Dict[str, Any]) -> str:
        """Create a new session with W3C capabilities."""
        value = await self._request(
            "POST",
            "/session",
            {"capabilities": {"alwaysMatch": capabilities, "firstMatch": [{}]}},
        )
        session_id = value.get("sessionId") if isinstance(value, dict) else None
        if not session_id:
            raise WebDriverError(f"Session creation returned no session id: {value}")
        self.session_id = session_id
        return session_id

    async def delete_session(self) -> None:
        if self.session_id:
            try:
                await self._request("DELETE", f"/session/{self.session_id}")
            finally:
                self.session_id = None

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    async def find_element(self, using: str, value: str) -> str:
        """Find one element and return its reference id."""
        result = await self._request(
            "POST", self._session_path("/element"), {"using": using, "value": value}
        )
        if isinstance(result, dict):
            element_id = result.get(ELEMENT_KEY) or result.get(LEGACY_ELEMENT_KEY)
            if element_id:
                return element_id
        raise WebDriverError(f"Malformed element reference: {result}", error="no such element")

    async def is_displayed(self, element_id: str) -> bool:
        return bool(
            await self._request("GET", self._session_path(f"/element/{element_id}/displayed"))
        )

    async def click(self, element_id: str) -> None:
        await self._request("POST", self._session_path(f"/element/{element_id}/click"), {})

    async def clear(self, element_id: str) -> None:
        await self._request("POST", self._session_path(f"/element/{element_id}/clear"), {})

    async def send_keys(self, element_id: str, text: str) -> None:
        await self._request(
            "POST",
            self._session_path(f"/element/{element_id}/value"),
            {"text": text, "value": list(text)},
        )

    async def page_source(self) -> str:
        return await self._request("GET", self._session_path("/source"))

    async def window_size(self) -> Dict[str, int]:
        rect = await self._request("GET", self._session_path("/window/rect"))
        return {"width": int(rect["width"]), "height": int(rect["height"])}

    async def perform_actions(self, actions: List[Dict[str, Any]]) -> None:
        await self._request("POST", self._session_path("/actions"), {"actions": actions})

    async def execute_script(self, script: str, args: Optional[List[Any]] = None) -> Any:
        return await self._request(
            "POST", self._session_path("/execute/sync"), {"script": script, "args": args or []}
        )

    async def screenshot(self) -> bytes:
        encoded = await self._request("GET", self._session_path("/screenshot"))
        return base64.b64decode(encoded)
