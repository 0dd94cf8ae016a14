from __future__ import annotations


class DispatchError(Exception):
    """A tool invocation that could not be completed; reported back to the agent."""


class UnknownTool(DispatchError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArgument(DispatchError):
    def __init__(self, param: str, expected: str):
        self.param = param
        self.expected = expected
        super().__init__(f"Invalid argument '{param}': {expected}")


class RemoteCallFailed(DispatchError):
    def __init__(self, name: str, cause: str):
        self.name = name
        self.cause = cause
        super().__init__(f"Error executing MCP tool \"{name}\": {cause}")
