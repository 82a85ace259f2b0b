import httpx
from typing import Any, Optional
from loguru import logger
from app.config import Settings
from app.backend.errors import BackendLogicFailure, MalformedResponseFailure, TransportFailure


class GasApiClient:
    """
    Client for the Google Apps Script web app that fronts the jobs spreadsheet.

    Every call is a single POST of {"apiKey", "action", ...payload}; the backend
    answers with an envelope {"ok": bool, "result": ..., "error": str}.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url:
            raise ValueError("GAS_API_URL not configured")
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GasApiClient":
        return cls(settings.GAS_API_URL, settings.GAS_API_KEY, settings.GAS_TIMEOUT_SECONDS)

    async def call(self, action: str, **payload: Any) -> Any:
        """
        Run one backend action and return its `result`.

        Raises:
            TransportFailure: network error, timeout, non-2xx status
            BackendLogicFailure: envelope with ok=false
            MalformedResponseFailure: body is not a JSON envelope
        """
        body = {"apiKey": self.api_key, "action": action, **payload}

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,  # Apps Script answers via a 302 to googleusercontent
        ) as client:
            try:
                r = await client.post(self.url, json=body)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.warning(f"Backend action '{action}' transport error: {type(e).__name__}: {e}")
                raise TransportFailure(action, f"{type(e).__name__}: {e}", e) from e

        if r.status_code < 200 or r.status_code >= 300:
            logger.warning(f"Backend action '{action}' HTTP error: {r.status_code}")
            raise TransportFailure(action, f"HTTP Error: {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            logger.error(f"Backend action '{action}' returned non-JSON body: {r.text[:200]!r}")
            raise MalformedResponseFailure(action, "response is not JSON", e) from e

        if not isinstance(data, dict) or "ok" not in data:
            logger.error(f"Backend action '{action}' returned unexpected payload: {data!r}")
            raise MalformedResponseFailure(action, "response is not an {ok, result} envelope")

        if not data["ok"]:
            error = data.get("error") or "unknown error"
            logger.warning(f"Backend action '{action}' failed: {error}")
            raise BackendLogicFailure(action, f"GAS Error: {error}")

        return data.get("result")
