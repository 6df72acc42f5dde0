"""
Backend over a hosted PostgREST API (the auto-generated REST interface of the
hosted database).

Filters use PostgREST operators (``status=eq.approved``, ``id=in.(a,b)``),
ordering uses ``order=created_at.desc``, and writes ask for the affected rows
back with ``Prefer: return=representation``. Error bodies (``code``,
``message``, ``details``) become BackendError; transport failures propagate as
httpx.TransportError so the retry wrapper can classify them.
"""

from typing import Any, Dict, List, Optional

import httpx

from app.core.errors import BackendError, NOT_FOUND, RATE_LIMITED, PERMISSION_DENIED
from app.services.backend import Filters, Ordering

DEFAULT_TIMEOUT = 15.0


def _filter_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        items = ",".join(f'"{item}"' for item in value)
        return f"in.({items})"
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def build_params(
    filters: Optional[Filters] = None,
    ordering: Optional[Ordering] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Dict[str, str]:
    params = {"select": "*"}
    for name, value in (filters or {}).items():
        params[name] = _filter_value(value)
    if ordering:
        params["order"] = ",".join(f"{name}.{direction}" for name, direction in ordering)
    if limit is not None:
        params["limit"] = str(limit)
    if offset:
        params["offset"] = str(offset)
    return params


def error_from_response(response: httpx.Response) -> BackendError:
    if response.status_code == 429:
        return BackendError("Too many requests", code=RATE_LIMITED)

    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("message"):
        return BackendError(body["message"], code=body.get("code"), details=body.get("details"))
    if response.status_code in (401, 403):
        return BackendError(f"HTTP {response.status_code}: permission denied", code=PERMISSION_DENIED)
    return BackendError(f"HTTP {response.status_code}: {response.text[:200]}", code=str(response.status_code))


class RestBackend:
    """
    Async PostgREST client.

    Args:
        base_url: Project URL (``https://<project>.supabase.co``)
        api_key: Anonymous/public API key sent as ``apikey``
        access_token: User JWT for row-level security (defaults to the API key)
        client: Optional pre-built httpx.AsyncClient (tests pass one with a MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
            "X-Client-Info": "consultancy-directory",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _url(self, collection: str) -> str:
        return f"{self.base_url}/rest/v1/{collection}"

    async def _request(
        self,
        method: str,
        collection: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> Any:
        response = await self._get_client().request(
            method,
            self._url(collection),
            params=params,
            json=json,
            headers=self.headers,
        )
        if response.status_code >= 400:
            raise error_from_response(response)
        if response.status_code == 204 or not response.content:
            return []
        return response.json()

    @staticmethod
    def _single(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        if len(rows) != 1:
            raise BackendError(
                "JSON object requested, multiple (or no) rows returned",
                code=NOT_FOUND,
                details=f"The result contains {len(rows)} rows",
            )
        return rows[0]

    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        ordering: Optional[Ordering] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return await self._request("GET", collection, params=build_params(filters, ordering, limit, offset))

    async def get(self, collection: str, id: str) -> Dict[str, Any]:
        rows = await self._request("GET", collection, params=build_params({"id": id}))
        return self._single(rows)

    async def insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._request("POST", collection, json=[record])
        return self._single(rows)

    async def update(self, collection: str, id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._request("PATCH", collection, params={"id": f"eq.{id}"}, json=patch)
        return self._single(rows)

    async def delete(self, collection: str, id: str) -> bool:
        rows = await self._request("DELETE", collection, params={"id": f"eq.{id}"})
        self._single(rows)
        return True

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RestBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


__all__ = ["RestBackend", "build_params", "error_from_response"]
