# tests/conftest.py
# Shared pytest fixtures (small synthetic datasets, fake MCP server)

import pytest
import geopandas as gpd
from shapely.geometry import Point
from unittest.mock import Mock

from mapchat.airports import AirportCatalog
from mapchat.dispatcher import ToolDispatcher
from mapchat.map_state import VisualizationState
from mapchat.mcp_client import McpError
from mapchat.tool_registry import ToolRegistry
from mapchat.tool_specs import local_tool_definitions


class FakeMcpClient:
    """
    Stands in for McpClient: canned tool list, records calls.
    """

    def __init__(self, tools=None, result=None, error=None):
        self.tools = tools or []
        self.result = result if result is not None else {"content": [{"type": "text", "text": "ok"}]}
        self.error = error
        self.calls = []

    def list_tools(self):
        if self.error is not None:
            raise self.error
        return self.tools

    def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def remote_tools():
    """
    Tools as advertised by tools/list.
    """
    return [
        {
            "name": "get_buffer_around_location",
            "description": "Buffer a location by a distance in meters.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "location": {"type": "string", "description": "Place name or WKT point"},
                    "distance": {"type": "number", "description": "Distance in meters"},
                },
                "additionalProperties": False,
            },
        },
        {
            "name": "get_area",
            "description": "Area of a WKT geometry.",
            "inputSchema": {"type": "object", "properties": {"wkt": {"type": "string"}}},
        },
        {
            "name": "bad name!",
            "description": "Name fails the pattern.",
            "inputSchema": {"type": "object", "properties": {}},
        },
    ]


@pytest.fixture
def whitelist():
    return {"get_buffer_around_location", "bad name!"}


@pytest.fixture
def registry(remote_tools, whitelist):
    return ToolRegistry.build(local_tool_definitions(), remote_tools, whitelist)


@pytest.fixture
def state():
    return VisualizationState()


@pytest.fixture
def sample_airports_gdf():
    """
    Tiny synthetic airport dataset in EPSG:4326.
    Used instead of the Natural Earth download.
    """
    data = {
        "name": ["Madrid Barajas", "Los Angeles Int'l", "Heathrow"],
        "iata_code": ["MAD", "LAX", "LHR"],
        "type": ["major", "major", "major"],
    }
    geometries = [Point(-3.5676, 40.4983), Point(-118.4085, 33.9416), Point(-0.4543, 51.47)]
    return gpd.GeoDataFrame(data, geometry=geometries, crs="EPSG:4326")


@pytest.fixture
def airports(sample_airports_gdf):
    return AirportCatalog(source=None, frame=sample_airports_gdf)


@pytest.fixture
def fake_mcp():
    return FakeMcpClient(result={"content": [{"type": "text", "text": '{"area_km2": 3.14}'}]})


@pytest.fixture
def failing_mcp():
    return FakeMcpClient(error=McpError("connection refused"))


@pytest.fixture
def dispatcher(registry, state, fake_mcp, airports):
    return ToolDispatcher(registry, state, mcp_client=fake_mcp, airports=airports)


@pytest.fixture
def mock_openai_client():
    """
    Mock OpenAI client that answers with plain text (no tool calls).
    """
    mock_client = Mock()
    mock_response = Mock()
    mock_choice = Mock()
    mock_message = Mock()

    mock_message.content = "Test response"
    mock_message.tool_calls = None
    mock_choice.message = mock_message
    mock_response.choices = [mock_choice]

    mock_client.chat.completions.create.return_value = mock_response

    return mock_client
