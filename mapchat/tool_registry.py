from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from mapchat.mcp_client import McpError
from mapchat.schema import ToolParameter, parameters_to_json_schema, translate_schema


logger = logging.getLogger(__name__)

TOOL_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class Origin(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, ToolParameter]
    origin: Origin
    input_schema: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)

    def to_openai(self) -> Dict[str, Any]:
        """
        Render as an OpenAI function tool.

        Local tools keep their hand-written schema; remote tools are
        re-emitted from the translated parameters since their schema is untrusted.
        """
        if self.origin is Origin.LOCAL and self.input_schema:
            parameters = self.input_schema
        else:
            parameters = parameters_to_json_schema(self.parameters)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


def definition_from_schema(name: str, description: Any, schema: Any, origin: Origin) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=description if isinstance(description, str) else "",
        parameters=translate_schema(schema),
        origin=origin,
        input_schema=dict(schema) if isinstance(schema, Mapping) else None,
    )


# ==================================================
# Registry
# ==================================================

@dataclass(frozen=True)
class ToolRegistry:
    """
    One immutable namespace of callable tools (local first, then remote).
    """
    tools: Dict[str, ToolDefinition]
    rejected: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        local_tools: Iterable[ToolDefinition],
        remote_advertised: Iterable[Any],
        whitelist: Iterable[str],
    ) -> "ToolRegistry":
        tools: Dict[str, ToolDefinition] = {}
        for tool in local_tools:
            tools[tool.name] = tool

        allowed = set(whitelist)
        rejected: List[str] = []

        for raw in remote_advertised:
            if not isinstance(raw, Mapping):
                logger.warning("Dropping malformed remote tool descriptor: %r", raw)
                rejected.append(repr(raw))
                continue

            name = raw.get("name")
            if not isinstance(name, str) or name not in allowed:
                continue
            if not TOOL_NAME_RE.match(name):
                logger.warning("Dropping remote tool with invalid name: %r", name)
                rejected.append(name)
                continue
            if name in tools:
                logger.debug("Remote tool %s shadowed by a local tool", name)
                continue

            tools[name] = definition_from_schema(
                name, raw.get("description"), raw.get("inputSchema"), Origin.REMOTE
            )

        return cls(tools=tools, rejected=tuple(rejected))

    @classmethod
    def empty(cls) -> "ToolRegistry":
        return cls(tools={})

    def lookup(self, name: str) -> Optional[ToolDefinition]:
        return self.tools.get(name)

    def describe(self) -> List[Tuple[str, str]]:
        return [(t.name, t.description) for t in self.tools.values()]

    def names(self) -> List[str]:
        return list(self.tools)

    def remote_tools(self) -> List[ToolDefinition]:
        return [t for t in self.tools.values() if t.origin is Origin.REMOTE]

    def openai_tools(self) -> List[Dict[str, Any]]:
        return [t.to_openai() for t in self.tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)


class RegistryHolder:
    """
    Holds the current registry snapshot; refreshes swap it atomically.
    """

    def __init__(self, registry: Optional[ToolRegistry] = None):
        self._registry = registry or ToolRegistry.empty()
        self._lock = threading.Lock()

    def current(self) -> ToolRegistry:
        with self._lock:
            return self._registry

    def swap(self, registry: ToolRegistry) -> ToolRegistry:
        with self._lock:
            previous, self._registry = self._registry, registry
        return previous

    def refresh(self, client, local_tools: Iterable[ToolDefinition], whitelist: Iterable[str]) -> ToolRegistry:
        """
        Re-list remote tools and swap in a new registry.

        On transport failure the previous snapshot stays in place and is returned.
        """
        local_tools = list(local_tools)
        try:
            advertised = client.list_tools() if client is not None else []
        except McpError as e:
            logger.error("Remote tool listing failed, keeping previous registry: %s", e)
            if not len(self.current()):
                self.swap(ToolRegistry.build(local_tools, [], whitelist))
            return self.current()

        registry = ToolRegistry.build(local_tools, advertised, whitelist)
        self.swap(registry)
        logger.info(
            "Tool registry loaded: %d tools (%d remote, %d rejected)",
            len(registry), len(registry.remote_tools()), len(registry.rejected),
        )
        return registry
