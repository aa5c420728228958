"""
Anthropic model client for code generation and the tool-calling repair loop.

ModelClient.generate() is the single-shot sketch → code call. Conversation wraps
one multi-turn tool-calling exchange: each send() appends a user turn, performs
exactly one Messages API request and returns the parsed AgentTurn.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic

from .config import get_settings
from .logging_config import get_session_logger

logger = logging.getLogger(__name__)

GENERATION_MAX_TOKENS = 16000
AGENT_MAX_TOKENS = 8192


class ModelError(Exception):
    """Raised when the model service cannot be reached or rejects a request."""
    pass


@dataclass
class ToolCall:
    """One tool invocation requested by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentTurn:
    """Parsed model response: requested tool calls plus any free text."""
    tool_calls: List[ToolCall] = field(default_factory=list)
    text: str = ""
    stop_reason: Optional[str] = None


@dataclass
class ImagePayload:
    """Base64 image ready to be attached to a user message."""
    media_type: str
    data: str

    def to_block(self) -> Dict[str, Any]:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
        }


def _block_to_dict(block: Any) -> Dict[str, Any]:
    """Convert an SDK content block into the plain dict form the API accepts back."""
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input or {}),
        }
    return {"type": block_type or "unknown"}


def _text_of(blocks: List[Dict[str, Any]]) -> str:
    return "\n".join(b["text"] for b in blocks if b.get("type") == "text" and b.get("text"))


class ModelClient:
    """
    Thin async wrapper around anthropic.AsyncAnthropic.

    Args:
        session_id: Session for request/response logging (optional)
        client: Pre-built AsyncAnthropic-compatible client (tests inject fakes)
        model: Model name, defaults to CLAUDE_MODEL from settings
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        client: Optional[Any] = None,
        model: Optional[str] = None,
    ):
        settings = get_settings()
        self.session_id = session_id or "unknown"
        self.model = model or settings.model
        self._client = client or anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key or None
        )
        self.slogger = get_session_logger(session_id) if session_id else None

    async def _create(self, **kwargs) -> Any:
        msg_id = f"req_{int(time.time() * 1000)}"
        if self.slogger:
            self.slogger.log_llm_request(
                msg_id=msg_id,
                system_prompt_len=len(kwargs.get("system", "") or ""),
                messages=kwargs.get("messages", []),
                tools=[t["name"] for t in kwargs.get("tools", [])],
                model=self.model,
            )

        try:
            response = await self._client.messages.create(model=self.model, **kwargs)
        except anthropic.APIError as e:
            error_msg = f"[{self.session_id}] Model request failed: {str(e)}"
            logger.error(error_msg, exc_info=True)
            if self.slogger:
                self.slogger.log_error("llm", error_msg)
            raise ModelError(error_msg) from e

        if self.slogger:
            usage = getattr(response, "usage", None)
            self.slogger.log_llm_response(
                msg_id=msg_id,
                stop_reason=getattr(response, "stop_reason", None),
                input_tokens=getattr(usage, "input_tokens", 0) if usage else 0,
                output_tokens=getattr(usage, "output_tokens", 0) if usage else 0,
                content_blocks=[_block_to_dict(b) for b in response.content],
            )
        return response

    async def generate(
        self,
        prompt: str,
        image: Optional[ImagePayload] = None,
        temperature: float = 1.0,
    ) -> str:
        """Single-shot request returning the concatenated response text."""
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image is not None:
            content.append(image.to_block())

        logger.info(f"[{self.session_id}] Generating with {self.model} (temperature={temperature})")
        response = await self._create(
            max_tokens=GENERATION_MAX_TOKENS,
            temperature=temperature,
            messages=[{"role": "user", "content": content}],
        )
        return _text_of([_block_to_dict(b) for b in response.content])

    def conversation(
        self,
        system: str,
        tools: List[Dict[str, Any]],
        temperature: float = 0.3,
    ) -> "Conversation":
        return Conversation(self, system, tools, temperature)


class Conversation:
    """One tool-calling exchange; the message history lives here."""

    def __init__(
        self,
        client: ModelClient,
        system: str,
        tools: List[Dict[str, Any]],
        temperature: float = 0.3,
    ):
        self.client = client
        self.system = system
        self.tools = tools
        self.temperature = temperature
        self.messages: List[Dict[str, Any]] = []

    def _append_user(self, content: List[Dict[str, Any]]) -> None:
        # The API requires alternating roles
        if self.messages and self.messages[-1]["role"] == "user":
            self.messages[-1]["content"].extend(content)
        else:
            self.messages.append({"role": "user", "content": list(content)})

    async def send(self, content: List[Dict[str, Any]]) -> AgentTurn:
        """
        Send user content (text, images and/or tool_result blocks) and return
        the model's next turn.
        """
        self._append_user(content)

        response = await self.client._create(
            max_tokens=AGENT_MAX_TOKENS,
            temperature=self.temperature,
            system=self.system,
            tools=self.tools,
            messages=self.messages,
        )

        blocks = [_block_to_dict(b) for b in response.content]
        if blocks:
            self.messages.append({"role": "assistant", "content": blocks})

        tool_calls = [
            ToolCall(id=b["id"], name=b["name"], arguments=b["input"])
            for b in blocks
            if b["type"] == "tool_use"
        ]
        return AgentTurn(
            tool_calls=tool_calls,
            text=_text_of(blocks),
            stop_reason=getattr(response, "stop_reason", None),
        )
