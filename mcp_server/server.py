from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

import requests
from mcp.server.fastmcp import FastMCP

BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL", "http://localhost:8000").rstrip("/")
BACKEND_API_BASE = os.getenv("BACKEND_API_BASE", "/api").rstrip("/")
DEFAULT_USER_ID = os.getenv("SLOTWISE_USER_ID", "").strip()
REQUEST_TIMEOUT = float(os.getenv("MCP_BACKEND_TIMEOUT", "15"))
DEBUG_MODE = os.getenv("MCP_DEBUG", "1").strip() in ("1", "true", "True", "yes")
LOG_REQUESTS = os.getenv("MCP_LOG_REQUESTS", "0").strip() in ("1", "true", "True", "yes")

mcp = FastMCP("slotwise-scheduler")


def _log_tool_call(tool_name: str, input_data: Dict[str, Any], output_data: Dict[str, Any]) -> None:
  if not DEBUG_MODE:
    return
  print(f"\n{'='*80}")
  print(f"Tool: {tool_name}")
  print(f"{'='*80}")
  print("input:")
  print(json.dumps(input_data, indent=2, ensure_ascii=False, default=str))
  print("\noutput:")
  print(json.dumps(output_data, indent=2, ensure_ascii=False, default=str))
  print(f"{'='*80}\n")


class RequestLoggerMiddleware:
  def __init__(self, app: Any):
    self.app = app

  async def __call__(self, scope: Dict[str, Any], receive: Any, send: Any) -> None:
    if scope.get("type") == "http" and LOG_REQUESTS:
      headers = self._decode_headers(scope.get("headers") or [])
      if "authorization" in headers:
        headers["authorization"] = "(redacted)"
      print(f"[MCP HTTP] {scope.get('method', '')} {scope.get('path', '')}", flush=True)
      print(json.dumps(headers, indent=2, ensure_ascii=False), flush=True)
    await self.app(scope, receive, send)

  def _decode_headers(self, raw_headers: List[Tuple[bytes, bytes]]) -> Dict[str, str]:
    return {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in raw_headers}


def _api_path(path: str) -> str:
  return f"{BACKEND_API_BASE}/{path.lstrip('/')}"


def _require_user_id(user_id: Optional[str]) -> str:
  uid = (user_id or DEFAULT_USER_ID).strip()
  if not uid:
    raise ValueError("user_id is required. Pass user_id or set SLOTWISE_USER_ID.")
  return uid


def _request(method: str,
             path: str,
             user_id: Optional[str],
             payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
  try:
    uid = _require_user_id(user_id)
  except ValueError as exc:
    return {"ok": False, "code": "invalid_request", "message": str(exc)}
  url = f"{BACKEND_BASE_URL}{path}"
  try:
    resp = requests.request(method,
                            url,
                            json=payload,
                            headers={"X-User-Id": uid},
                            timeout=REQUEST_TIMEOUT)
  except requests.RequestException as exc:
    return {
        "ok": False,
        "code": "request_failed",
        "message": f"Backend request failed: {exc}",
    }

  try:
    data = resp.json()
  except ValueError:
    data = {"raw": resp.text}

  if resp.status_code >= 400:
    return {
        "ok": False,
        "code": "backend_error",
        "status": resp.status_code,
        "error": data,
    }
  return {"ok": True, "data": data}


@mcp.tool(name="scheduling.parse_request")
def scheduling_parse_request(
    prompt: str,
    timezone: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
  """Turn a free-text scheduling request into a structured intent."""
  inputs = {"prompt": prompt, "timezone": timezone, "user_id": user_id}
  if not (prompt or "").strip():
    result = {"ok": False, "code": "invalid_request", "message": "prompt is required."}
  else:
    result = _request("POST", _api_path("/ai/parse"), user_id,
                      payload={"prompt": prompt, "timezone": timezone})
  _log_tool_call("scheduling.parse_request", inputs, result)
  return result


@mcp.tool(name="scheduling.suggest_slots")
def scheduling_suggest_slots(
    parsed_intent: Dict[str, Any],
    workspace_id: Optional[str] = None,
    search_window_days: int = 7,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
  """Rank free slots for a parsed intent."""
  payload = {
      "parsed_intent": parsed_intent,
      "workspace_id": workspace_id,
      "search_window_days": search_window_days,
  }
  result = _request("POST", _api_path("/ai/suggest"), user_id, payload=payload)
  _log_tool_call("scheduling.suggest_slots", payload, result)
  return result


@mcp.tool(name="scheduling.commit_slot")
def scheduling_commit_slot(
    selected_slot: Dict[str, Any],
    parsed_intent: Dict[str, Any],
    workspace_id: Optional[str] = None,
    auto_resolve_conflicts: bool = False,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
  """Create the event for a chosen slot, optionally moving conflicting events."""
  payload = {
      "selected_slot": selected_slot,
      "parsed_intent": parsed_intent,
      "workspace_id": workspace_id,
      "auto_resolve_conflicts": auto_resolve_conflicts,
  }
  result = _request("POST", _api_path("/ai/schedule"), user_id, payload=payload)
  _log_tool_call("scheduling.commit_slot", payload, result)
  return result


@mcp.tool(name="scheduling.clarify")
def scheduling_clarify(
    prompt: str,
    ambiguities: List[str],
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
  """Ask one follow-up question for the missing pieces of a request."""
  payload = {"prompt": prompt, "ambiguities": ambiguities}
  result = _request("POST", _api_path("/ai/clarify"), user_id, payload=payload)
  _log_tool_call("scheduling.clarify", payload, result)
  return result


@mcp.tool(name="scheduling.status")
def scheduling_status(user_id: Optional[str] = None) -> Dict[str, Any]:
  result = _request("GET", _api_path("/ai/status"), user_id)
  _log_tool_call("scheduling.status", {"user_id": user_id}, result)
  return result


if __name__ == "__main__":
  import uvicorn

  host = os.getenv("MCP_HOST", "0.0.0.0")
  port = int(os.getenv("MCP_PORT", "8001"))
  app = mcp.streamable_http_app()
  if LOG_REQUESTS:
    app = RequestLoggerMiddleware(app)
  uvicorn.run(app, host=host, port=port)
