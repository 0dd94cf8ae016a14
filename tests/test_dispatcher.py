# tests/test_dispatcher.py
# Unit tests for tool dispatch: validation, local effects, remote relay

import json
import threading

import pytest

from mapchat.dispatcher import ToolDispatcher, format_remote_result
from mapchat.errors import InvalidArgument, RemoteCallFailed, UnknownTool
from mapchat.map_state import ViewPosition
from mapchat.mcp_client import McpTimeout
from mapchat.tool_registry import RegistryHolder, ToolRegistry

from conftest import FakeMcpClient


# ============================================================
# 1) Lookup + validation
# ============================================================
def test_unknown_tool_leaves_state_alone(dispatcher, state):
    result = dispatcher.dispatch("unknownTool", {})

    assert result.ok is False
    assert isinstance(result.error, UnknownTool)
    assert result.error.name == "unknownTool"
    assert state.version == 0


def test_missing_required_argument(dispatcher, state):
    result = dispatcher.dispatch("zoomToLocation", {"longitude": 2.35, "locationName": "Paris"})

    assert isinstance(result.error, InvalidArgument)
    assert result.error.param == "latitude"
    assert state.version == 0


def test_wrong_type_argument(dispatcher):
    result = dispatcher.dispatch("zoomToLocation", {"longitude": "east", "latitude": 1, "locationName": "X"})
    assert isinstance(result.error, InvalidArgument)
    assert result.error.param == "longitude"
    assert result.error.expected == "number"


def test_numeric_strings_are_accepted(dispatcher, state):
    result = dispatcher.dispatch("zoomToLocation", {"longitude": "2.35", "latitude": "48.86", "locationName": "Paris"})
    assert result.ok
    assert state.view_position == ViewPosition(2.35, 48.86, 10)


def test_bool_is_not_a_number(dispatcher):
    result = dispatcher.dispatch("zoomToLocation", {"longitude": True, "latitude": 1, "locationName": "X"})
    assert isinstance(result.error, InvalidArgument)


def test_arguments_must_be_an_object(dispatcher):
    result = dispatcher.dispatch("zoomToHome", ["not", "a", "dict"])
    assert isinstance(result.error, InvalidArgument)


# ============================================================
# 2) Local tools
# ============================================================
def test_zoom_to_location(dispatcher, state):
    result = dispatcher.dispatch("zoomToLocation", {"longitude": 2.35, "latitude": 48.86, "locationName": "Paris"})

    assert result.ok is True
    assert "Paris" in result.output
    assert state.view_position == ViewPosition(lon=2.35, lat=48.86, zoom=10)


def test_zoom_to_location_out_of_range(dispatcher, state):
    result = dispatcher.dispatch("zoomToLocation", {"longitude": 200, "latitude": 0, "locationName": "Nowhere"})
    assert isinstance(result.error, InvalidArgument)
    assert state.version == 0


def test_zoom_to_home(dispatcher, state):
    result = dispatcher.dispatch("zoomToHome", {})
    assert result.ok
    assert "London" in result.output
    assert state.view_position.lat == pytest.approx(51.5074)


def test_draw_and_read_back(dispatcher, state):
    result = dispatcher.dispatch("drawWktGeometry", {"wkt": "POLYGON((0 0, 1 0, 1 1, 0 1, 0 0))", "name": "Box"})
    assert result.ok
    assert 'POLYGON "Box"' in result.output

    region = dispatcher.dispatch("getDrawnRegion", {})
    data = json.loads(region.output)
    assert data["name"] == "Box"
    assert data["wkt"] == "POLYGON((0 0, 1 0, 1 1, 0 1, 0 0))"
    assert data["bounds"] == [0.0, 0.0, 1.0, 1.0]
    # one square degree at the equator is roughly 12,300 km2
    assert 12000 < data["area_km2"] < 12500


def test_get_drawn_region_when_empty(dispatcher):
    result = dispatcher.dispatch("getDrawnRegion", {})
    assert result.ok
    assert result.output.startswith("Error: No region has been drawn")


def test_draw_invalid_wkt_reports_codec_error(dispatcher, state):
    result = dispatcher.dispatch("drawWktGeometry", {"wkt": "POLYGON((0 0,1 0"})

    assert isinstance(result.error, InvalidArgument)
    assert result.error.param == "wkt"
    assert "unclosed" in result.error.expected
    assert state.version == 0


def test_draw_rejects_bad_color(dispatcher, state):
    result = dispatcher.dispatch("drawWktGeometry", {"wkt": "POLYGON((0 0, 1 0, 1 1, 0 0))", "color": [300, 0, 0, 0]})
    assert isinstance(result.error, InvalidArgument)
    assert result.error.param == "color"
    assert state.drawn_geometry is None


def test_draw_multipolygon_with_color(dispatcher, state):
    result = dispatcher.dispatch("drawWktGeometry", {
        "wkt": "MULTIPOLYGON(((0 0,1 0,1 1,0 0)),((2 2,3 2,3 3,2 2)))",
        "color": [10, 20, 30, 40],
    })
    assert result.ok
    assert "MULTIPOLYGON" in result.output
    assert state.drawn_geometry.color == (10, 20, 30, 40)


def test_lookup_airport(dispatcher):
    result = dispatcher.dispatch("lookupAirport", {"iataCode": "mad"})
    assert result.ok
    assert "Madrid Barajas" in result.output
    assert "```json" in result.output


def test_lookup_airport_not_found(dispatcher):
    result = dispatcher.dispatch("lookupAirport", {"iataCode": "ZZZ"})
    assert result.output == "No airport found with IATA code: ZZZ"


def test_lookup_airport_without_data(registry, state):
    d = ToolDispatcher(registry, state, airports=None)
    result = d.dispatch("lookupAirport", {"iataCode": "MAD"})
    assert "No airport data available" in result.output


def test_add_carto_map(dispatcher, state):
    url = "https://clausa.app.carto.com/map/2d350d98-26b5-4827-a3dd-d62cdaff5ee0"
    result = dispatcher.dispatch("addCartoMap", {"mapUrl": url})

    assert result.ok
    source, layers = state.external_layers
    assert source == "2d350d98-26b5-4827-a3dd-d62cdaff5ee0"
    assert layers[0]["sourceUrl"] == url


def test_add_carto_map_bad_url(dispatcher, state):
    result = dispatcher.dispatch("addCartoMap", {"mapUrl": "https://example.com/nothing"})
    assert isinstance(result.error, InvalidArgument)
    assert result.error.param == "mapUrl"
    assert state.version == 0


def test_post_effects_roundtrip(dispatcher, state):
    r1 = dispatcher.dispatch("applyPostProcessEffect", {"brightness": 0.5, "vignetteSize": 0.3})
    assert r1.ok
    assert "brightness: 0.5" in r1.output

    dispatcher.dispatch("applyPostProcessEffect", {"vignetteAmount": 0.4})
    assert state.post_effects == {"brightness": 0.5, "vignette": {"size": 0.3, "amount": 0.4}}

    dispatcher.dispatch("applyPostProcessEffect", {"brightness": 0})
    assert "brightness" not in state.post_effects


def test_post_effects_reset(dispatcher, state):
    dispatcher.dispatch("applyPostProcessEffect", {"sepia": 0.5})
    result = dispatcher.dispatch("applyPostProcessEffect", {"reset": True})

    assert state.post_effects == {}
    assert "no effects are active" in result.output


@pytest.mark.parametrize("args", [
    {"brightness": 1.5},
    {"contrast": -2},
    {"sepia": -0.1},
    {"ink": 1.01},
    {"noise": 2},
    {"vignetteAmount": 3},
])
def test_post_effect_ranges(dispatcher, state, args):
    result = dispatcher.dispatch("applyPostProcessEffect", args)
    assert isinstance(result.error, InvalidArgument)
    assert "between" in result.error.expected
    assert state.version == 0


def test_rejected_call_has_no_partial_effect(dispatcher, state):
    dispatcher.dispatch("applyPostProcessEffect", {"sepia": 0.2})
    before = state.post_effects

    result = dispatcher.dispatch("applyPostProcessEffect", {"sepia": 0.9, "noise": 5})
    assert not result.ok
    assert state.post_effects == before


# ============================================================
# 3) Remote tools
# ============================================================
def test_remote_call_pretty_prints_json(dispatcher, fake_mcp, state):
    result = dispatcher.dispatch("get_buffer_around_location", {"location": "Madrid", "distance": 1000})

    assert result.ok
    assert fake_mcp.calls == [("get_buffer_around_location", {"location": "Madrid", "distance": 1000.0})]
    assert '"area_km2": 3.14' in result.output
    assert state.version == 0


def test_remote_call_plain_text():
    out = format_remote_result("t", {"content": [{"type": "text", "text": "POLYGON((...))"}]})
    assert out == 'MCP Tool "t" result:\nPOLYGON((...))'


def test_remote_call_no_content():
    out = format_remote_result("t", {"content": []})
    assert "returned no content" in out


def test_remote_failure(registry, state, failing_mcp):
    d = ToolDispatcher(registry, state, mcp_client=failing_mcp)
    result = d.dispatch("get_buffer_around_location", {"location": "Madrid", "distance": 1})

    assert isinstance(result.error, RemoteCallFailed)
    assert "connection refused" in result.error.cause
    assert state.version == 0


def test_remote_timeout(registry, state):
    d = ToolDispatcher(registry, state, mcp_client=FakeMcpClient(error=McpTimeout("tools/call timed out after 30s")))
    result = d.dispatch("get_buffer_around_location", {"location": "Madrid", "distance": 1})

    assert isinstance(result.error, RemoteCallFailed)
    assert result.error.cause.startswith("timed out")


@pytest.mark.parametrize("result", [
    {"content": 5},
    {"content": "text"},
    ["not", "an", "object"],
    42,
])
def test_remote_malformed_result(registry, state, result):
    d = ToolDispatcher(registry, state, mcp_client=FakeMcpClient(result=result))
    out = d.dispatch("get_buffer_around_location", {"location": "Madrid", "distance": 1})

    assert out.ok is False
    assert isinstance(out.error, RemoteCallFailed)
    assert out.error.cause == "unexpected result format"


def test_remote_without_client(registry, state):
    result = ToolDispatcher(registry, state).dispatch("get_buffer_around_location", {"location": "x", "distance": 1})
    assert isinstance(result.error, RemoteCallFailed)


def test_remote_extra_arguments_are_forwarded(dispatcher, fake_mcp):
    dispatcher.dispatch("get_buffer_around_location", {"location": "x", "distance": 1, "units": "m"})
    assert fake_mcp.calls[-1][1]["units"] == "m"


# ============================================================
# 4) Snapshot + deferred dispatch
# ============================================================
def test_dispatch_uses_current_snapshot(registry, state, fake_mcp):
    holder = RegistryHolder(registry)
    d = ToolDispatcher(holder, state, mcp_client=fake_mcp)

    assert d.dispatch("get_buffer_around_location", {"location": "x", "distance": 1}).ok

    holder.swap(ToolRegistry.empty())
    assert isinstance(d.dispatch("get_buffer_around_location", {"location": "x", "distance": 1}).error, UnknownTool)


def test_submit_returns_future(dispatcher, state):
    futures = [
        dispatcher.submit("zoomToHome", {}),
        dispatcher.submit("zoomToLocation", {"longitude": 1, "latitude": 2, "locationName": "A"}),
    ]
    results = [f.result(timeout=5) for f in futures]
    dispatcher.close()

    assert all(r.ok for r in results)
    assert state.view_position == ViewPosition(1, 2, 10)


def test_concurrent_submit_shares_one_worker(registry, state):
    workers = set()

    def record_worker(ctx):
        workers.add(threading.get_ident())
        return "ok"

    d = ToolDispatcher(registry, state, local_functions={"zoomToHome": record_worker})
    barrier = threading.Barrier(8)
    futures = []

    def submit_one():
        barrier.wait()
        futures.append(d.submit("zoomToHome", {}))

    threads = [threading.Thread(target=submit_one) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(f.result(timeout=5).ok for f in futures)
    d.close()
    assert len(workers) == 1
