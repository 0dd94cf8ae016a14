import json
import logging
import os
import time

from flask import Flask, jsonify, render_template, request, session
from jinja2 import TemplateNotFound
from openai import OpenAI

from mapchat.airports import AirportCatalog
from mapchat.config import ConfigError, load_display_config, load_settings, load_system_prompt
from mapchat.dispatcher import ToolDispatcher
from mapchat.logging_config import setup_logging
from mapchat.map_state import VisualizationState
from mapchat.mcp_client import McpClient
from mapchat.tool_registry import RegistryHolder, ToolRegistry
from mapchat.tool_specs import local_tool_definitions


settings = load_settings()
logger = logging.getLogger("mapchat.app")

# --------------------------------------------------
# Flask setup
# --------------------------------------------------
app = Flask(__name__)
app.secret_key = os.getenv("FLASK_SECRET_KEY", "dev-secret-key")

MAX_TOOL_ROUNDS = 5
REGISTRY_TTL_SECONDS = 300

# --------------------------------------------------
# Core objects (one map per process)
# --------------------------------------------------
map_state = VisualizationState()
registry_holder = RegistryHolder()
mcp_client = (
    McpClient(settings.mcp_server_url, settings.mcp_api_token, timeout=settings.mcp_timeout)
    if settings.mcp_enabled
    else None
)
airports = AirportCatalog(settings.airports_url)
dispatcher = ToolDispatcher(registry_holder, map_state, mcp_client=mcp_client, airports=airports)

_client = None
_registry_loaded_at = None


def get_openai_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(api_key=settings.openai_api_key)
    return _client


def ensure_registry() -> ToolRegistry:
    """
    Load the tool registry on first use and re-list remote tools once the TTL expires.
    """
    global _registry_loaded_at
    now = time.monotonic()
    if _registry_loaded_at is None or now - _registry_loaded_at > REGISTRY_TTL_SECONDS:
        registry_holder.refresh(mcp_client, local_tool_definitions(), settings.mcp_whitelist)
        _registry_loaded_at = now
    return registry_holder.current()


def build_system_prompt(registry: ToolRegistry) -> str:
    prompt = load_system_prompt(settings.config_dir)
    remote = registry.remote_tools()
    if not remote:
        return prompt
    listing = "\n".join(f"- {t.name}: {t.description}" for t in remote)
    return f"{prompt}\n\nYou also have access to CARTO MCP geospatial workflow tools:\n{listing}"


# --------------------------------------------------
# Helpers: session state
# --------------------------------------------------
def ensure_state():
    session.setdefault("messages", [])  # list of {"role": "...", "content": "..."}


def run_tool_call(tool_call) -> str:
    name = tool_call.function.name
    try:
        arguments = json.loads(tool_call.function.arguments or "{}")
    except json.JSONDecodeError as e:
        return f"Error: tool arguments for {name} are not valid JSON: {e}"

    result = dispatcher.dispatch(name, arguments)
    return result.output if result.ok else f"Error: {result.output}"


def chat_with_agent(history: list) -> str:
    registry = ensure_registry()
    messages = [{"role": "system", "content": build_system_prompt(registry)}]
    messages.extend(history)

    client = get_openai_client()
    for _ in range(MAX_TOOL_ROUNDS):
        response = client.chat.completions.create(
            model=settings.openai_model,
            messages=messages,
            tools=registry.openai_tools(),
            tool_choice="auto",
            temperature=0.2,
            max_tokens=500,
        )
        msg = response.choices[0].message

        if not getattr(msg, "tool_calls", None):
            return msg.content or "No reply generated."

        messages.append({
            "role": "assistant",
            "content": msg.content or "",
            "tool_calls": [tc.model_dump() for tc in msg.tool_calls],
        })

        for tc in msg.tool_calls:
            logger.info("Tool call received: %s", tc.function.name)
            messages.append({
                "role": "tool",
                "tool_call_id": tc.id,
                "content": run_tool_call(tc),
            })

    return "Stopped after too many tool calls. Please try a simpler request."


# --------------------------------------------------
# Routes
# --------------------------------------------------
@app.get("/")
def index():
    ensure_state()
    try:
        return render_template("index.html")
    except TemplateNotFound:
        return jsonify({"ok": True, "app": "mapchat"})


@app.post("/api/chat")
def api_chat():
    ensure_state()

    payload = request.get_json(force=True, silent=True) or {}
    user_text = (payload.get("message") or "").strip()
    if not user_text:
        return jsonify({"ok": False, "error": "Empty message"}), 400

    session["messages"].append({"role": "user", "content": user_text})
    version_before = map_state.version

    try:
        assistant_text = chat_with_agent(list(session["messages"]))
    except Exception as e:
        logger.exception("Chat request failed")
        return jsonify({"ok": False, "error": f"Internal server error: {e}"}), 500

    session["messages"].append({"role": "assistant", "content": assistant_text})
    session.modified = True

    resp = {
        "ok": True,
        "reply": assistant_text,
        "messages": session["messages"],
    }
    # only include map state if a tool changed it in this request
    if map_state.version != version_before:
        resp["state"] = map_state.snapshot()
    return jsonify(resp)


@app.get("/api/state")
def api_state():
    return jsonify(map_state.snapshot())


@app.get("/api/config")
def api_config():
    try:
        return jsonify(load_display_config(settings.config_dir))
    except ConfigError as e:
        logger.error("%s", e)
        return jsonify({"error": "Failed to load configuration"}), 500


@app.get("/api/tools")
def api_tools():
    registry = ensure_registry()
    return jsonify({
        "ok": True,
        "tools": [{"name": name, "description": desc} for name, desc in registry.describe()],
    })


@app.get("/api/history")
def api_history():
    ensure_state()
    return jsonify({"ok": True, "messages": session["messages"]})


@app.post("/api/reset")
def api_reset():
    """
    Clears chat + map state (like a 'Reset' button).
    """
    session.clear()
    ensure_state()
    map_state.reset()
    return jsonify({"ok": True})


if __name__ == "__main__":
    setup_logging(settings.log_file)
    app.run(port=8000, debug=True)
