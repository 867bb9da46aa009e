"""
JSON-RPC transport to the Bitcoin Core wallet.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from chanfund.errors import GatewayError, TransportError

# Timeout for RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0


class BitcoinRPCClient:
    """
    Minimal async JSON-RPC client.

    Errors reported by the node in the response body become GatewayError;
    everything that prevents reading such a body becomes TransportError.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8332",
        rpc_user: str = "rpcuser",
        rpc_password: str = "rpcpassword",
        timeout: float = DEFAULT_RPC_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout, auth=(rpc_user, rpc_password), transport=transport
        )
        self._request_id = 0

    async def call(self, method: str, params: list | None = None) -> Any:
        """
        Make an RPC call.

        Args:
            method: RPC method name
            params: Positional method parameters

        Returns:
            RPC result, with JSON numbers containing a fraction as Decimal

        Raises:
            GatewayError: The node returned an error object
            TransportError: Connection, timeout, or malformed response
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise TransportError(method, e) from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise TransportError(method, e) from e

        # Bitcoin Core reports RPC errors with HTTP 500 (JSON-RPC 1.x) or 200
        # (JSON-RPC 2.0), so the body is inspected before the status code.
        try:
            data = response.json(parse_float=Decimal)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"RPC call returned HTTP {response.status_code} non-JSON body: {method}")
            raise TransportError(method, f"HTTP {response.status_code}: {e}") from e

        error_info = data.get("error") if isinstance(data, dict) else None
        if error_info:
            if isinstance(error_info, dict):
                code = error_info.get("code")
                message = str(error_info.get("message", error_info))
            else:
                code, message = None, str(error_info)
            logger.debug(f"RPC error from {method}: {code} {message}")
            raise GatewayError(code, message, method)

        if response.is_error:
            logger.error(f"RPC call failed: {method} - HTTP {response.status_code}")
            raise TransportError(method, f"HTTP {response.status_code}")

        if not isinstance(data, dict) or "result" not in data:
            raise TransportError(method, "response has no result field")

        return data["result"]

    async def close(self) -> None:
        await self.client.aclose()
