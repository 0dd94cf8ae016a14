from __future__ import annotations

import json
import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from mapchat import functions
from mapchat.airports import AirportCatalog
from mapchat.errors import DispatchError, InvalidArgument, RemoteCallFailed, UnknownTool
from mapchat.functions import ToolContext
from mapchat.map_state import VisualizationState
from mapchat.mcp_client import McpClient, McpError, McpTimeout, first_text
from mapchat.schema import ParamKind, ToolParameter
from mapchat.tool_registry import Origin, RegistryHolder, ToolDefinition, ToolRegistry


logger = logging.getLogger(__name__)

LocalToolFn = Callable[..., str]

LOCAL_TOOL_FUNCTIONS: Dict[str, LocalToolFn] = {
    "zoomToHome": functions.zoom_to_home,
    "zoomToLocation": functions.zoom_to_location,
    "lookupAirport": functions.lookup_airport,
    "drawWktGeometry": functions.draw_wkt_geometry,
    "getDrawnRegion": functions.get_drawn_region,
    "addCartoMap": functions.add_carto_map,
    "applyPostProcessEffect": functions.apply_post_process_effect,
}


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    output: str
    error: Optional[DispatchError] = None


# ==================================================
# Argument checking
# ==================================================

def _coerce(param: ToolParameter, value: Any) -> Any:
    kind = param.kind

    if kind is ParamKind.NUMBER:
        if isinstance(value, bool):
            raise InvalidArgument(param.name, "number")
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                raise InvalidArgument(param.name, "number") from None
        else:
            raise InvalidArgument(param.name, "number")
        if not math.isfinite(number):
            raise InvalidArgument(param.name, "finite number")
        return number

    if kind is ParamKind.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise InvalidArgument(param.name, "boolean")

    if kind is ParamKind.STRING:
        if not isinstance(value, str):
            raise InvalidArgument(param.name, "string")
        return value

    # OBJECT / ANY accept anything
    return value


def validate_arguments(tool: ToolDefinition, args: Any) -> Dict[str, Any]:
    """
    Check args against the tool's parameters and return a coerced copy.

    None counts as absent. Unknown arguments are dropped for local tools and
    forwarded untouched to remote ones.
    """
    if args is None:
        args = {}
    if not isinstance(args, Mapping):
        raise InvalidArgument("arguments", "object")

    checked: Dict[str, Any] = {}
    for name, value in args.items():
        if value is None:
            continue
        param = tool.parameters.get(name)
        if param is None:
            if tool.origin is Origin.REMOTE:
                checked[name] = value
            else:
                logger.debug("Ignoring unknown argument %s for %s", name, tool.name)
            continue
        checked[name] = _coerce(param, value)

    for param in tool.parameters.values():
        if not param.optional and param.name not in checked:
            raise InvalidArgument(param.name, f"required {param.kind.value}")
    return checked


def format_remote_result(name: str, result: Dict[str, Any]) -> str:
    text = first_text(result)
    if text is None:
        return f'MCP Tool "{name}" executed but returned no content'
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return f'MCP Tool "{name}" result:\n{text}'
    return f'MCP Tool "{name}" result:\n```json\n{json.dumps(data, indent=2)}\n```'


# ==================================================
# Dispatcher
# ==================================================

class ToolDispatcher:
    """
    Executes agent tool calls against the visualization state or the MCP server.
    """

    def __init__(
        self,
        registry: Union[RegistryHolder, ToolRegistry],
        state: VisualizationState,
        mcp_client: Optional[McpClient] = None,
        airports: Optional[AirportCatalog] = None,
        local_functions: Optional[Dict[str, LocalToolFn]] = None,
    ):
        self._holder = registry if isinstance(registry, RegistryHolder) else RegistryHolder(registry)
        self.state = state
        self.mcp_client = mcp_client
        self.context = ToolContext(state=state, airports=airports)
        self.local_functions = dict(LOCAL_TOOL_FUNCTIONS if local_functions is None else local_functions)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def registry(self) -> ToolRegistry:
        return self._holder.current()

    def dispatch(self, name: str, args: Optional[Mapping[str, Any]] = None) -> DispatchResult:
        registry = self._holder.current()
        try:
            output = self._execute(registry, name, args)
        except DispatchError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return DispatchResult(ok=False, output=str(e), error=e)

        logger.info("Tool %s -> %s", name, output[:200])
        return DispatchResult(ok=True, output=output)

    def submit(self, name: str, args: Optional[Mapping[str, Any]] = None) -> "Future[DispatchResult]":
        """
        Deferred dispatch; calls run one at a time in submission order.
        """
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tool-dispatch")
            return self._executor.submit(self.dispatch, name, args)

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def _execute(self, registry: ToolRegistry, name: str, args: Any) -> str:
        tool = registry.lookup(name)
        if tool is None:
            raise UnknownTool(name)

        checked = validate_arguments(tool, args)

        if tool.origin is Origin.LOCAL:
            fn = self.local_functions.get(name)
            if fn is None:
                raise UnknownTool(name)
            return fn(self.context, **checked)

        return self._call_remote(name, checked)

    def _call_remote(self, name: str, args: Dict[str, Any]) -> str:
        if self.mcp_client is None:
            raise RemoteCallFailed(name, "MCP server is not configured")

        try:
            result = self.mcp_client.call_tool(name, args)
        except McpTimeout as e:
            raise RemoteCallFailed(name, f"timed out: {e}") from e
        except McpError as e:
            raise RemoteCallFailed(name, str(e)) from e

        if not isinstance(result, Mapping):
            raise RemoteCallFailed(name, "unexpected result format")
        content = result.get("content")
        if content is not None and not isinstance(content, list):
            raise RemoteCallFailed(name, "unexpected result format")
        return format_remote_result(name, result)
