"""Engine status and readiness checks.

These are used by health endpoints and never raise: problems come back
as a StatusResult error or as a human-readable message.
"""

import time

import structlog

from solr_adapter.engine.transport import SolrTransport
from solr_adapter.errors import EngineConnectionError
from solr_adapter.search.schemas import StatusResult

logger = structlog.get_logger()

MINIMUM_MAJOR_VERSION = 4

SERVER_STATUS_ERROR = "The search engine server is not reachable"
MINIMUM_VERSION_ERROR = (
    f"Solr {MINIMUM_MAJOR_VERSION} or later is required by this search engine"
)


class StatusChecker:
    """Checks whether the engine is reachable and set up for our index."""

    def __init__(self, transport: SolrTransport):
        self._transport = transport
        self._major_version: int | None = None

    def get_major_version(self) -> int:
        """Return the engine's major version, cached after the first call.

        Raises:
            EngineConnectionError: If the version cannot be read
        """
        if self._major_version is not None:
            return self._major_version
        info = self._transport.system_info()
        try:
            version = info["lucene"]["solr-spec-version"]
            self._major_version = int(str(version).split(".", 1)[0])
        except (KeyError, TypeError, ValueError) as e:
            raise EngineConnectionError("Could not read engine version") from e
        return self._major_version

    def is_server_configured(self) -> bool | str:
        """Check the engine can be reached and is recent enough.

        Returns:
            True if all good, or an error message
        """
        try:
            if self.get_major_version() < MINIMUM_MAJOR_VERSION:
                return MINIMUM_VERSION_ERROR
        except EngineConnectionError as e:
            logger.warning("engine server check failed", error=str(e))
            return SERVER_STATUS_ERROR
        return True

    def is_server_ready(self) -> bool | str:
        """Readiness check used before searching or indexing."""
        return self.is_server_configured()

    def get_status(self, timeout: float = 0) -> StatusResult:
        """Query the engine's core admin status for our index.

        Args:
            timeout: Optional timeout in seconds, otherwise the configured one

        Returns:
            StatusResult describing connection, core and index size
        """
        result = StatusResult()
        index_name = self._transport.index_name
        try:
            before = time.monotonic()
            try:
                response = self._transport.raw_get(
                    "admin/cores", params={"wt": "json"}, timeout=timeout or None
                )
            finally:
                result.time = time.monotonic() - before

            if response.status_code != 200:
                result.error = f"Unsuccessful status code: {response.status_code}"
                return result
            try:
                decoded = response.json()
            except ValueError:
                decoded = None
            if not decoded or not isinstance(decoded, dict):
                result.error = "Invalid JSON"
                return result

            # Valid JSON means the engine is there; later problems may just be
            # format changes in newer versions.
            result.connected = True
            if "status" not in decoded:
                result.error = "Unexpected JSON: no core status"
                return result

            for core in decoded["status"].values():
                if "name" not in core:
                    result.error = "Unexpected JSON: core has no name"
                    return result
                match = core["name"] == index_name
                if not match and "cloud" in core:
                    if "collection" not in core["cloud"]:
                        result.error = "Unexpected JSON: core cloud has no name"
                        return result
                    match = core["cloud"]["collection"] == index_name
                if not match:
                    continue

                result.foundcore = True
                if "index" not in core:
                    result.error = "Unexpected JSON: core has no index"
                    return result
                if "sizeInBytes" not in core["index"]:
                    result.error = "Unexpected JSON: core index has no sizeInBytes"
                    return result
                result.indexsize = core["index"]["sizeInBytes"]
                return result

            result.error = f"Could not find core matching {index_name}"
            return result
        except Exception as e:
            result.error = f"Exception occurred: {e}"
            result.exception = type(e).__name__
            return result
