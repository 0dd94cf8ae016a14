from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping


class ParamKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ANY = "any"


_KIND_BY_TYPE = {
    "string": ParamKind.STRING,
    "number": ParamKind.NUMBER,
    "boolean": ParamKind.BOOLEAN,
    "object": ParamKind.OBJECT,
}


@dataclass(frozen=True)
class ToolParameter:
    name: str
    kind: ParamKind
    optional: bool = False
    description: str = ""

    def to_json_schema(self) -> Dict[str, Any]:
        prop: Dict[str, Any] = {}
        if self.kind is not ParamKind.ANY:
            prop["type"] = self.kind.value
        if self.description:
            prop["description"] = self.description
        return prop


def kind_for(declared: Any) -> ParamKind:
    """
    Map a JSON-schema "type" onto a ParamKind.

    Anything not recognised (missing, "integer", "array", union lists...)
    widens to ANY so the tool stays callable.
    """
    if isinstance(declared, str):
        return _KIND_BY_TYPE.get(declared, ParamKind.ANY)
    return ParamKind.ANY


def translate_schema(schema: Any) -> Dict[str, ToolParameter]:
    """
    Convert an advertised input schema into {name: ToolParameter}.

    Never raises: untrusted schemas degrade to fewer / looser parameters.
    A schema with a "required" list makes every other property optional;
    without one, every property is required.
    """
    if not isinstance(schema, Mapping):
        return {}

    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        return {}

    required = schema.get("required")
    required_names = None
    if isinstance(required, (list, tuple)):
        required_names = {r for r in required if isinstance(r, str)}

    params: Dict[str, ToolParameter] = {}
    for name, prop in properties.items():
        if not isinstance(name, str):
            continue
        prop = prop if isinstance(prop, Mapping) else {}

        description = prop.get("description")
        optional = bool(prop.get("optional", False))
        if required_names is not None and name not in required_names:
            optional = True

        params[name] = ToolParameter(
            name=name,
            kind=kind_for(prop.get("type")),
            optional=optional,
            description=description if isinstance(description, str) else "",
        )
    return params


def parameters_to_json_schema(params: Mapping[str, ToolParameter]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: p.to_json_schema() for name, p in params.items()},
        "required": [name for name, p in params.items() if not p.optional],
    }
