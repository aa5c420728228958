"""
Per-request session logs for the sketch-to-UI builder.

Each /api/generate or /api/agent-edit request writes into
logs/<session_id>/:
- session.log: timeline of everything below
- stream.log: SSE events sent to the client
- agent.log: repair/edit loop milestones
- llm_requests.jsonl, llm_responses.jsonl: model traffic (images summarized)
- tool_calls.jsonl: one line per agent tool call
- sandbox.log: sandbox acquisition and teardown
- errors.log: failures with tracebacks
- summary.json: written on close (outcome, iterations, token totals)
"""

import json
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import get_settings

PREVIEW_CHARS = 100
LARGE_STRING = 200


def _summarize_block(block: Dict[str, Any]) -> Dict[str, Any]:
    """Compact description of one message content block.

    Sketch images are base64 payloads of several hundred KB and never belong
    in a log line.
    """
    block_type = block.get("type", "unknown")
    if block_type == "text":
        text = block.get("text", "")
        preview = text if len(text) <= PREVIEW_CHARS else text[:PREVIEW_CHARS] + "..."
        return {"type": "text", "len": len(text), "preview": preview}
    if block_type == "image":
        source = block.get("source", {})
        return {
            "type": "image",
            "media_type": source.get("media_type"),
            "data_len": len(source.get("data", "")),
        }
    if block_type == "tool_use":
        return {"type": "tool_use", "name": block.get("name"), "id": block.get("id")}
    if block_type == "tool_result":
        return {
            "type": "tool_result",
            "tool_use_id": block.get("tool_use_id"),
            "is_error": block.get("is_error", False),
            "len": len(str(block.get("content", ""))),
        }
    return {"type": block_type}


def _shorten(value: Any) -> Any:
    if isinstance(value, str) and len(value) > LARGE_STRING:
        return f"<{len(value)} chars>"
    return value


class SessionLogger:
    """File-backed logger for one request. Writes are serialized with a lock."""

    CHANNELS = ("session", "stream", "agent", "sandbox", "errors")
    JSONL_CHANNELS = ("llm_requests", "llm_responses", "tool_calls")

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.session_dir = get_settings().logs_dir / session_id
        self.session_dir.mkdir(parents=True, exist_ok=True)

        self.start_time = datetime.now(timezone.utc)
        self._lock = threading.Lock()
        self._files = {name: open(self.session_dir / f"{name}.log", "a") for name in self.CHANNELS}
        self._files.update(
            {name: open(self.session_dir / f"{name}.jsonl", "a") for name in self.JSONL_CHANNELS}
        )

        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.request_count = 0
        self.tool_call_count = 0
        self.failed_tool_calls = 0
        self.outcome: Dict[str, Any] = {}

        self.log_session("SESSION_START", f"session_id={session_id}")

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _write(self, channel: str, tag: str, message: str):
        with self._lock:
            f = self._files[channel]
            f.write(f"[{self._timestamp()}] [{tag}] {message}\n")
            f.flush()

    def _write_json(self, channel: str, data: dict):
        with self._lock:
            data["timestamp"] = self._timestamp()
            f = self._files[channel]
            f.write(json.dumps(data, default=str) + "\n")
            f.flush()

    def log_session(self, tag: str, message: str):
        self._write("session", tag, message)

    def log_event_out(self, event: str, data: dict):
        """Log an SSE event; code payloads are reduced to their length."""
        summary = {k: _shorten(v) for k, v in data.items()}
        self._write("stream", event.upper(), json.dumps(summary, default=str))
        self.log_session("STREAM_OUT", f"event={event}")

    def log_agent(self, tag: str, message: str):
        self._write("agent", tag, message)
        self.log_session(f"AGENT_{tag}", message)

    def log_llm_request(
        self,
        msg_id: str,
        system_prompt_len: int,
        messages: List[dict],
        tools: List[str],
        model: str,
    ):
        self.request_count += 1
        last_turn = messages[-1] if messages else {}
        content = last_turn.get("content", [])
        self._write_json("llm_requests", {
            "msg_id": msg_id,
            "model": model,
            "system_prompt_len": system_prompt_len,
            "message_count": len(messages),
            "tools": tools,
            "last_turn": {
                "role": last_turn.get("role"),
                "blocks": [_summarize_block(b) for b in content] if isinstance(content, list) else [],
            },
        })
        self.log_session("LLM_REQUEST", f"msg_id={msg_id}, messages={len(messages)}")

    def log_llm_response(
        self,
        msg_id: str,
        stop_reason: Optional[str],
        input_tokens: int,
        output_tokens: int,
        content_blocks: List[dict],
    ):
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self._write_json("llm_responses", {
            "msg_id": msg_id,
            "stop_reason": stop_reason,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
            "blocks": [_summarize_block(b) for b in content_blocks],
        })
        self.log_session(
            "LLM_RESPONSE",
            f"msg_id={msg_id}, stop={stop_reason}, tokens_in={input_tokens}, tokens_out={output_tokens}",
        )

    def log_tool_call(
        self,
        tool_id: str,
        tool_name: str,
        input_data: dict,
        duration_ms: float,
        success: bool,
        output: Any,
    ):
        self.tool_call_count += 1
        if not success:
            self.failed_tool_calls += 1
        self._write_json("tool_calls", {
            "tool_id": tool_id,
            "tool_name": tool_name,
            # write_file content is a whole component
            "input": {k: _shorten(v) for k, v in input_data.items()},
            "duration_ms": round(duration_ms, 1),
            "success": success,
            "output": _shorten(output),
        })
        self.log_session(
            "TOOL_CALL",
            f"tool={tool_name}, success={success}, duration={duration_ms:.0f}ms",
        )

    def log_sandbox(self, tag: str, message: str):
        self._write("sandbox", tag, message)
        self.log_session(f"SANDBOX_{tag}", message)

    def log_error(self, component: str, error: str, traceback: Optional[str] = None):
        self._write("errors", component, error)
        if traceback:
            self._write("errors", "TRACEBACK", traceback)
        self.log_session("ERROR", f"[{component}] {error[:100]}")

    def record_outcome(self, **outcome: Any):
        """Remember how the request ended; written to summary.json on close."""
        self.outcome.update(outcome)

    def close(self):
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        summary = {
            "session_id": self.session_id,
            "started_at": self.start_time.isoformat(),
            "duration_s": round(duration, 1),
            "model_requests": self.request_count,
            "tool_calls": self.tool_call_count,
            "failed_tool_calls": self.failed_tool_calls,
            "tokens_in": self.total_input_tokens,
            "tokens_out": self.total_output_tokens,
            **self.outcome,
        }
        self.log_session("SESSION_END", json.dumps(summary, default=str))
        with open(self.session_dir / "summary.json", "w") as f:
            json.dump(summary, f, indent=2, default=str)

        for f in self._files.values():
            f.close()


_session_loggers: Dict[str, SessionLogger] = {}
_registry_lock = threading.Lock()


def get_session_logger(session_id: str) -> SessionLogger:
    """Get or create the logger for a session."""
    with _registry_lock:
        if session_id not in _session_loggers:
            _session_loggers[session_id] = SessionLogger(session_id)
        return _session_loggers[session_id]


def close_session_logger(session_id: str):
    """Close a session's files and drop it from the registry."""
    with _registry_lock:
        slogger = _session_loggers.pop(session_id, None)
    if slogger is not None:
        slogger.close()
