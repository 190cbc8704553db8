"""SQL execution gateway client (pg-meta query endpoint)."""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from copilot.infra.config import config
from copilot.infra.error_handler import GatewayUnavailable, SqlExecutionError
from copilot.models.tool import ToolContext

logger = logging.getLogger(__name__)


class SqlGateway:
    """Client for the platform's SQL execution endpoint.

    Every call is an independent statement: no transaction spans two calls.
    The encrypted connection descriptor travels in ``x-connection-encrypted``;
    forwarded request headers (Authorization, cookie) are passed through so the
    platform can authorize the statement.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self._base_url = base_url
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return (self._base_url or config.PG_META_URL).rstrip("/")

    @property
    def timeout(self) -> float:
        return self._timeout or config.SQL_GATEWAY_TIMEOUT

    def query_url(self, project_ref: str) -> str:
        base = self.base_url
        if "{project_ref}" in base:
            base = base.replace("{project_ref}", project_ref)
        return f"{base}/query"

    def _headers(self, context: ToolContext) -> Dict[str, str]:
        headers = {k: v for k, v in (context.headers or {}).items() if v is not None}
        headers["Content-Type"] = "application/json"
        if context.connection_string:
            headers["x-connection-encrypted"] = context.connection_string
        return headers

    async def execute(self, sql: str, context: ToolContext) -> List[Dict[str, Any]]:
        """
        Execute one SQL statement and return its rows.

        Args:
            sql: Statement text (already validated by the calling tool)
            context: Tool context carrying project ref, connection and headers

        Returns:
            List of row dicts (empty for statements without a result set)

        Raises:
            SqlExecutionError: If the database rejected the statement
            GatewayUnavailable: If the gateway could not be reached
        """
        url = self.query_url(context.project_ref)
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    json={"query": sql},
                    headers=self._headers(context),
                )
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            logger.warning(f"SQL gateway unreachable for project {context.project_ref}: {e}")
            raise GatewayUnavailable(f"SQL gateway unavailable: {e}")

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            "SQL gateway call",
            extra={"project_ref": context.project_ref, "status_code": response.status_code, "latency_ms": latency_ms},
        )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            raise SqlExecutionError(
                _error_message(payload) or f"SQL gateway error ({response.status_code})",
                status_code=response.status_code,
            )

        return _rows(payload)


def _error_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message")
        return payload.get("message") or (error if isinstance(error, str) else None)
    return None


def _rows(payload: Any) -> List[Dict[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if "error" in payload and payload["error"]:
            raise SqlExecutionError(_error_message(payload) or "SQL gateway error")
        result = payload.get("result")
        if isinstance(result, list):
            return result
    return []


sql_gateway = SqlGateway()
