import logging
from dataclasses import dataclass
from typing import Any

import httpx

from retail_sync.errors import ErrorKind, RemoteError

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 15.0


@dataclass
class UpsertResult:
    error: RemoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _error_from_response(response: httpx.Response) -> RemoteError:
    """Builds a RemoteError from a PostgREST error body."""
    message = response.text
    code = None
    try:
        body = response.json()
        if isinstance(body, dict):
            message = body.get("message") or message
            code = body.get("code")
    except ValueError:
        pass
    return RemoteError(message or f"HTTP {response.status_code}", kind=ErrorKind.REMOTE,
                       status=response.status_code, code=code)


def _in_filter(values) -> str:
    quoted = ",".join('"{}"'.format(str(v).replace('"', '\\"')) for v in values)
    return f"in.({quoted})"


class SupabaseClient:
    """Minimal PostgREST client for the hosted database.

    Only what the submission core needs: upsert by conflict columns, plus the
    select/delete pair used to prune stale item rows.
    """

    def __init__(self, url: str | None, api_key: str | None, timeout: float = HTTP_TIMEOUT,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.url = url.rstrip("/") if url else None
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        if not self.configured:
            raise ValueError("Missing SUPABASE_URL / SUPABASE_ANON_KEY configuration.")
        return httpx.AsyncClient(base_url=f"{self.url}/rest/v1", headers=self._headers(),
                                 timeout=self.timeout, transport=self.transport)

    async def upsert(self, table: str, records: dict | list[dict], on_conflict: str) -> UpsertResult:
        """Insert-or-update records keyed by the on_conflict columns.

        HTTP errors and transport failures are returned inside the result,
        anything else is raised.
        """
        rows = records if isinstance(records, list) else [records]
        headers = {"Prefer": "resolution=merge-duplicates,return=minimal"}
        try:
            async with self._client() as client:
                response = await client.post(f"/{table}", params={"on_conflict": on_conflict},
                                             json=rows, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error = _error_from_response(e.response)
            logger.error(f"HTTP error upserting into {table}: {e.response.status_code} - {error.message}")
            return UpsertResult(error=error)
        except httpx.RequestError as e:
            logger.error(f"Network error upserting into {table}: {e!r}")
            return UpsertResult(error=RemoteError(str(e) or type(e).__name__, kind=ErrorKind.NETWORK))
        logger.debug(f"Upserted {len(rows)} rows into {table} (on_conflict={on_conflict})")
        return UpsertResult()

    async def select_column(self, table: str, column: str, session_id: str) -> list[Any]:
        """Returns the column values of every row belonging to session_id."""
        async with self._client() as client:
            response = await client.get(f"/{table}", params={"select": column, "session_id": f"eq.{session_id}"})
            response.raise_for_status()
        return [row.get(column) for row in response.json()]

    async def delete_where_in(self, table: str, column: str, values, session_id: str) -> None:
        """Deletes the rows of session_id whose column is one of values. None matches NULL."""
        values = list(values)
        if not values:
            return
        present = [v for v in values if v is not None]
        params = {"session_id": f"eq.{session_id}"}
        if len(present) == len(values):
            params[column] = _in_filter(present)
        elif present:
            params["or"] = f"({column}.is.null,{column}.{_in_filter(present)})"
        else:
            params[column] = "is.null"
        async with self._client() as client:
            response = await client.delete(f"/{table}", params=params)
            response.raise_for_status()
        logger.info(f"Deleted {len(values)} stale rows from {table} for session {session_id}")
