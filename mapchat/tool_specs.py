# OpenAI-style tool schema definitions (JSON-schema-like) for the built-in map tools.
# The AI can only call these plus the whitelisted remote MCP tools.

from __future__ import annotations

from typing import List

from mapchat.tool_registry import Origin, ToolDefinition, definition_from_schema


map_tools = [
    {
        "type": "function",
        "function": {
            "name": "zoomToHome",
            "description": "Zoom the map to London (home location).",
            "parameters": {
                "type": "object",
                "properties": {},
                "required": []
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "zoomToLocation",
            "description": "Zoom the map to a specific location by coordinates.",
            "parameters": {
                "type": "object",
                "properties": {
                    "longitude": {"type": "number", "description": "Longitude coordinate of the location"},
                    "latitude": {"type": "number", "description": "Latitude coordinate of the location"},
                    "locationName": {"type": "string", "description": "Name of the location for user feedback"},
                    "zoom": {"type": "number", "description": "Zoom level (default: 10)"},
                },
                "required": ["longitude", "latitude", "locationName"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "lookupAirport",
            "description": (
                "Look up detailed information about an airport by its IATA code from the loaded dataset. "
                "Use this tool whenever users ask for information about any airport."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "iataCode": {
                        "type": "string",
                        "description": '3-letter IATA airport code (e.g. "MAD" for Madrid, "LAX" for Los Angeles)'
                    }
                },
                "required": ["iataCode"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "drawWktGeometry",
            "description": (
                "Draw a WKT (Well-Known Text) geometry on the map. Supports POLYGON and MULTIPOLYGON formats. "
                "Use this to visualize geometric shapes like buffers, boundaries, or analysis results."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "wkt": {
                        "type": "string",
                        "description": 'WKT geometry string (e.g. "POLYGON((0 0, 1 0, 1 1, 0 1, 0 0))")'
                    },
                    "name": {"type": "string", "description": "Optional name for the geometry"},
                    "color": {
                        "type": "array",
                        "items": {"type": "number"},
                        "description": "Optional RGBA color array [r, g, b, a] with values 0-255"
                    },
                },
                "required": ["wkt"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "getDrawnRegion",
            "description": (
                "Get the region currently drawn on the map as WKT, with its area and bounds. "
                "Use it before calling MCP tools that need a geometry."
            ),
            "parameters": {
                "type": "object",
                "properties": {},
                "required": []
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "addCartoMap",
            "description": (
                "Add a CARTO map to the visualization by its CARTO URL (viewer, builder or map URLs). "
                "The map ID is extracted from the URL and its layers are loaded."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "mapUrl": {
                        "type": "string",
                        "description": 'CARTO URL (e.g. "https://clausa.app.carto.com/map/2d350d98-26b5-4827-a3dd-d62cdaff5ee0")'
                    }
                },
                "required": ["mapUrl"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": "applyPostProcessEffect",
            "description": (
                "Apply post-process visual effects to the map: brightness, contrast, sepia, vignette, ink and noise. "
                "Effects are additive - they merge with existing effects. To remove an effect, set it to 0. "
                "Use reset: true to clear all effects first."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "brightness": {"type": "number", "description": "Brightness adjustment (-1 to 1). Set to 0 to remove"},
                    "contrast": {"type": "number", "description": "Contrast adjustment (-1 to 1). Set to 0 to remove"},
                    "sepia": {"type": "number", "description": "Sepia tone effect (0 to 1). Set to 0 to remove"},
                    "vignetteSize": {"type": "number", "description": "Vignette size (0 to 1). Set to 0 to remove"},
                    "vignetteAmount": {"type": "number", "description": "Vignette intensity (0 to 1). Set to 0 to remove"},
                    "ink": {"type": "number", "description": "Ink effect strength (0 to 1). Set to 0 to remove"},
                    "noise": {"type": "number", "description": "Noise amount (0 to 1). Set to 0 to remove"},
                    "reset": {"type": "boolean", "description": "Clear all existing effects before applying new ones"},
                },
                "required": []
            }
        }
    },
]


def local_tool_definitions() -> List[ToolDefinition]:
    return [
        definition_from_schema(
            spec["function"]["name"],
            spec["function"]["description"],
            spec["function"]["parameters"],
            Origin.LOCAL,
        )
        for spec in map_tools
    ]
