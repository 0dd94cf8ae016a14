"""
MCP client for the CARTO workflows server.

Speaks JSON-RPC 2.0 over HTTP POST. The server may answer with plain JSON or
with an event stream whose `data: ` lines carry the JSON payload; the last
data line wins.
"""

from __future__ import annotations

import itertools
import json
import logging
from typing import Any, Dict, List, Optional

import requests


logger = logging.getLogger(__name__)


class McpError(RuntimeError):
    """Any failure talking to the MCP server (transport or protocol)."""


class McpTimeout(McpError):
    pass


def parse_sse_response(text: str) -> Optional[Dict[str, Any]]:
    """
    Return the JSON payload of the last `data: ` line, or of the whole body
    when the server answered with plain JSON. None when nothing parses.
    """
    payload = None
    for line in text.splitlines():
        if line.startswith("data: "):
            try:
                payload = json.loads(line[len("data: "):])
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON event line: %s", line[:200])

    if payload is None and text.strip():
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return None
    return payload if isinstance(payload, dict) else None


class McpClient:
    def __init__(self, server_url: str, api_token: str = "", timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.server_url = server_url
        self.api_token = api_token
        self.timeout = timeout
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _rpc(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        request: Dict[str, Any] = {"jsonrpc": "2.0", "method": method, "id": next(self._ids)}
        if params is not None:
            request["params"] = params

        try:
            response = self._session.post(
                self.server_url,
                json=request,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise McpTimeout(f"{method} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise McpError(f"{method} request failed: {e}") from e

        data = parse_sse_response(response.text)
        if data is None:
            raise McpError(f"Unexpected MCP response format for {method}")
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise McpError(f"MCP error: {message}")
        if "result" not in data:
            raise McpError(f"Unexpected MCP response format for {method}")
        return data["result"]

    def list_tools(self) -> List[Dict[str, Any]]:
        result = self._rpc("tools/list")
        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list):
            raise McpError("tools/list returned no tool list")
        logger.info("MCP server advertised %d tools", len(tools))
        return tools

    def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("[MCP] Calling tool %s with args %s", name, arguments)
        result = self._rpc("tools/call", {"name": name, "arguments": arguments})
        if not isinstance(result, dict):
            raise McpError(f"tools/call for {name} returned a non-object result")
        if result.get("isError"):
            raise McpError(f"Tool reported an error: {first_text(result) or 'unknown error'}")
        return result


def first_text(result: Dict[str, Any]) -> Optional[str]:
    content = result.get("content") if isinstance(result, dict) else None
    if not isinstance(content, list):
        return None
    for block in content:
        if isinstance(block, dict) and isinstance(block.get("text"), str):
            return block["text"]
    return None
