import logging
from typing import Any, Dict, List, Optional

import httpx

from voicecmd.config import settings
from voicecmd.errors import EndpointError
from voicecmd.models import LookupMatch, MutationResult, Specialist

logger = logging.getLogger(__name__)

PATIENT_SEARCH_PATH = "/api/patients/search"
SPECIALISTS_PATH = "/api/specialists"
SPECIALIST_MATCH_PATH = "/api/specialists/match"


class EndpointClient:
    """
    HTTP client for the mutation, lookup and specialist endpoints.
    The storage behind them is not our concern; we only read
    {success, error?, data?} envelopes.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.ENDPOINTS_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ENDPOINT_TIMEOUT_SECONDS
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, json=body)
        except httpx.RequestError as exc:
            logger.error("[ENDPOINT] %s %s unreachable: %s", method, path, exc)
            raise EndpointError(f"Could not reach {path}.") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EndpointError(
                f"Unexpected response from {path} (HTTP {response.status_code}).",
                status=response.status_code,
            ) from exc

        if not isinstance(data, dict):
            raise EndpointError(f"Unexpected response from {path}.", status=response.status_code)

        if response.is_error:
            logger.warning("[ENDPOINT] %s %s -> %s", method, path, response.status_code)
            data.setdefault("success", False)

        return data

    async def mutate(self, endpoint: str, body: Dict[str, Any]) -> MutationResult:
        data = await self._request("POST", endpoint, body)
        return {
            "success": bool(data.get("success")),
            "error": data.get("error"),
        }

    async def search_patients(self, name: str) -> List[LookupMatch]:
        data = await self._request("POST", PATIENT_SEARCH_PATH, {"name": name})
        if not data.get("success"):
            return []

        matches: List[LookupMatch] = []
        for row in data.get("data") or []:
            if isinstance(row, dict) and row.get("id"):
                matches.append({"id": str(row["id"]), "name": str(row.get("name") or "")})
        return matches

    async def list_specialists(self) -> List[Specialist]:
        data = await self._request("GET", SPECIALISTS_PATH)

        rows = data.get("specialists") if data.get("success") else None
        if rows is None:
            # older directory shape
            rows = data.get("data")
        if not isinstance(rows, list):
            logger.warning("[ENDPOINT] unexpected specialists response")
            return []

        return [row for row in rows if isinstance(row, dict) and row.get("name")]

    async def match_specialist(self, question: str) -> Optional[str]:
        data = await self._request("POST", SPECIALIST_MATCH_PATH, {"query": question})
        if not data.get("success"):
            return None
        name = data.get("specialistName")
        if not name:
            return None
        return str(name).strip() or None
