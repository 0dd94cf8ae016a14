from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from mapchat.airports import DEFAULT_AIRPORTS_URL


load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

DEFAULT_WHITELIST = ("get_buffer_around_location",)
DEFAULT_MODEL = "gpt-4o-mini"

DEFAULT_SYSTEM_PROMPT = """
You are a map assistant. You control an interactive map through tools.

- Use zoomToLocation / zoomToHome to move the map.
- Use drawWktGeometry to show polygons, and getDrawnRegion to read what the user drew.
- Use lookupAirport for airport questions; never invent airport data.
- Use applyPostProcessEffect for visual styling requests.
- NEVER fabricate numbers or analysis results.
""".strip()


class ConfigError(RuntimeError):
    pass


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    mcp_server_url: str = ""
    mcp_api_token: str = ""
    mcp_whitelist: Tuple[str, ...] = DEFAULT_WHITELIST
    mcp_timeout: float = 30.0
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    airports_url: str = DEFAULT_AIRPORTS_URL
    log_file: str = "debug.log"
    config_dir: Path = field(default=CONFIG_DIR)

    @property
    def mcp_enabled(self) -> bool:
        return bool(self.mcp_server_url)


def load_settings() -> Settings:
    """
    Read settings from the environment (.env is loaded on import).
    """
    return Settings(
        mcp_server_url=os.getenv("CARTO_MCP_SERVER_URL", ""),
        mcp_api_token=os.getenv("CARTO_API_TOKEN", ""),
        mcp_whitelist=_env_list("MCP_TOOL_WHITELIST", DEFAULT_WHITELIST),
        mcp_timeout=_env_float("MCP_TIMEOUT_SECONDS", 30.0),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        airports_url=os.getenv("AIRPORTS_URL", DEFAULT_AIRPORTS_URL),
        log_file=os.getenv("MAPCHAT_LOG_FILE", "debug.log"),
        config_dir=Path(os.getenv("MAPCHAT_CONFIG_DIR", str(CONFIG_DIR))),
    )


def load_display_config(config_dir: Path) -> Dict[str, Any]:
    """
    Load config.json (data source, display settings, example questions).

    Raises ConfigError when the file is missing or not valid JSON.
    """
    path = Path(config_dir) / "config.json"
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to load configuration from {path}: {e}") from e

    return {
        "dataSource": data.get("dataSource"),
        "displaySettings": data.get("displaySettings"),
        "exampleQuestions": data.get("exampleQuestions", []),
    }


def load_system_prompt(config_dir: Path) -> str:
    path = Path(config_dir) / "system-prompt.md"
    if not path.exists():
        return DEFAULT_SYSTEM_PROMPT
    return path.read_text(encoding="utf-8").strip() or DEFAULT_SYSTEM_PROMPT
