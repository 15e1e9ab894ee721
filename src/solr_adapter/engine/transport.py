"""HTTP transport to the Solr engine.

Wraps an httpx client with the engine's connection settings. Queries never
raise: they come back as a QueryOutcome so callers can tell an empty result
from a failed call. Write operations (add, delete, commit) raise
EngineConnectionError.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx
import structlog

from solr_adapter.config import Settings
from solr_adapter.engine.normalizer import response_counts
from solr_adapter.errors import EngineConnectionError, EngineNotConfiguredError
from solr_adapter.search.schemas import QueryOutcome

logger = structlog.get_logger()

# Params sent as repeated keys ({"fq": ["a", "b"]})
QueryParams = dict[str, str | list[str]]


def _error_message(response: httpx.Response) -> str:
    """Pull the most useful error text out of an engine response."""
    try:
        body = response.json()
    except ValueError:
        # Only the first line, the rest is usually a Java stack trace
        first_line = response.text.strip().split("\n", 1)[0]
        return f"HTTP {response.status_code}: {first_line}"
    error = body.get("error", {}) if isinstance(body, dict) else {}
    msg = error.get("msg") if isinstance(error, dict) else None
    return f"HTTP {response.status_code}: {msg or 'unknown error'}"


class SolrTransport:
    """Request/response access to one Solr index.

    When ``reuse_connection`` is set one httpx client is kept for the life
    of the transport; otherwise a fresh client is created (and closed) for
    every call.
    """

    def __init__(
        self,
        hostname: str,
        index_name: str,
        *,
        port: int | None = None,
        secure: bool = False,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        reuse_connection: bool = True,
        http_transport: httpx.BaseTransport | None = None,
    ):
        """Initialize transport with connection parameters.

        Args:
            hostname: Engine host name (no scheme)
            index_name: Core or collection name
            port: Optional port
            secure: Use https instead of http
            username: Optional basic auth user
            password: Optional basic auth password
            timeout: Connect and read timeout per call, in seconds
            reuse_connection: Keep a single client across calls
            http_transport: Optional httpx transport for dependency injection
        """
        if not hostname or not index_name:
            raise EngineNotConfiguredError("No solr configuration found")
        self.hostname = hostname
        self.index_name = index_name
        self.port = port
        self.secure = secure
        self.timeout = timeout
        self.reuse_connection = reuse_connection
        self._auth = (username, password or "") if username else None
        self._http_transport = http_transport
        self._client: httpx.Client | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        alternate: bool = False,
        http_transport: httpx.BaseTransport | None = None,
    ) -> "SolrTransport":
        """Create a transport for the primary or the alternate server."""
        if alternate:
            hostname = settings.alternate_server_hostname
            index_name = settings.alternate_index_name
            port = settings.alternate_server_port
        else:
            hostname = settings.server_hostname
            index_name = settings.index_name
            port = settings.server_port
        return cls(
            hostname or "",
            index_name or "",
            port=port,
            secure=settings.secure,
            username=settings.server_username,
            password=settings.server_password,
            timeout=settings.server_timeout,
            reuse_connection=settings.reuse_connection,
            http_transport=http_transport,
        )

    def server_url(self, path: str) -> str:
        """URL below /solr/ on the server, not tied to our index."""
        protocol = "https" if self.secure else "http"
        url = f"{protocol}://{self.hostname.rstrip('/')}"
        if self.port:
            url += f":{self.port}"
        return f"{url}/solr/{path.lstrip('/')}"

    def connection_url(self, path: str) -> str:
        """URL below our index, e.g. ``connection_url("select")``."""
        return self.server_url(f"{self.index_name}/{path.lstrip('/')}")

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            auth=self._auth,
            timeout=httpx.Timeout(self.timeout),
            transport=self._http_transport,
        )

    @contextmanager
    def _session(self) -> Iterator[httpx.Client]:
        if not self.reuse_connection:
            client = self._build_client()
            try:
                yield client
            finally:
                client.close()
            return
        if self._client is None:
            self._client = self._build_client()
        yield self._client

    def close(self) -> None:
        """Close the cached client, if any."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def query(self, params: QueryParams) -> QueryOutcome:
        """Run a select query.

        Args:
            params: Engine query parameters

        Returns:
            QueryOutcome that is OK with data, EMPTY with data, or FAILED
            with the error text
        """
        payload = {**params, "wt": "json"}
        try:
            with self._session() as client:
                response = client.post(self.connection_url("select"), data=payload)
        except httpx.HTTPError as e:
            logger.warning("engine query failed", error=str(e))
            return QueryOutcome.failure(f"{type(e).__name__}: {e}")

        if response.status_code != 200:
            message = _error_message(response)
            logger.warning("engine rejected query", error=message)
            return QueryOutcome.failure(message)

        try:
            data = response.json()
        except ValueError:
            logger.warning("engine returned invalid JSON")
            return QueryOutcome.failure("Invalid JSON in engine response")

        included, found = response_counts(data)
        if included == 0 or found == 0:
            return QueryOutcome.empty(data)
        return QueryOutcome.success(data)

    def raw_get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """GET a server path below /solr/ (e.g. ``admin/cores``).

        Raises:
            httpx.HTTPError: If the request cannot be completed
        """
        with self._session() as client:
            return client.get(
                self.server_url(path),
                params=params,
                timeout=httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT,
            )

    def system_info(self) -> dict[str, Any]:
        """Fetch the index's system information block.

        Raises:
            EngineConnectionError: If the call fails or returns bad data
        """
        try:
            response = self.raw_get(
                f"{self.index_name}/admin/info/system", params={"wt": "json"}
            )
        except httpx.HTTPError as e:
            raise EngineConnectionError(f"Engine unreachable: {e}") from e
        if response.status_code != 200:
            raise EngineConnectionError(
                _error_message(response), status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise EngineConnectionError("Invalid JSON in system info") from e

    def _update(self, body: Any, params: dict[str, Any] | None = None) -> None:
        query = {"wt": "json", **(params or {})}
        try:
            with self._session() as client:
                response = client.post(
                    self.connection_url("update"), params=query, json=body
                )
        except httpx.HTTPError as e:
            raise EngineConnectionError(f"{type(e).__name__}: {e}") from e
        if response.status_code != 200:
            raise EngineConnectionError(
                _error_message(response), status_code=response.status_code
            )

    def add_documents(
        self, docs: list[dict[str, Any]], commit_within: int | None = None
    ) -> None:
        """Add (or overwrite) documents.

        Args:
            docs: Engine field-maps
            commit_within: Milliseconds within which the engine must commit
        """
        params = {"overwrite": "true"}
        if commit_within:
            params["commitWithin"] = str(commit_within)
        self._update(docs, params)

    def delete_by_query(self, query: str) -> None:
        self._update({"delete": {"query": query}})

    def delete_by_id(self, doc_id: str) -> None:
        self._update({"delete": {"id": doc_id}})

    def commit(self) -> None:
        self._update({"commit": {}})

    def extract(self, params: list[tuple[str, str]], content: bytes) -> httpx.Response:
        """POST raw file content to the extraction handler.

        The body is sent as-is rather than multipart, which avoids the
        engine corrupting multipart uploads.

        Raises:
            httpx.HTTPError: If the request cannot be completed
        """
        with self._session() as client:
            return client.post(
                self.connection_url("update/extract"),
                params=params,
                content=content,
                headers={"Content-Type": "application/octet-stream"},
            )
