"""
Sketch → React component generation.

The model is called exactly once per request. Its answer must contain a fenced
code block; the first one is extracted and cleaned of comments before it is
written into the sandbox.
"""

import logging
import re
from typing import Mapping, Optional, Tuple

from .llm import ImagePayload, ModelClient
from .prompts.sketch_prompts import create_website_prompt

logger = logging.getLogger(__name__)

CODE_BLOCK_RE = re.compile(r"```(?:tsx|typescript|jsx|javascript)?\s*([\s\S]*?)```")
# Whichever comment opens first wins, so "/*" inside a // comment is inert.
# "//" preceded by ":" is a URL scheme (https://), not a comment
COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/|(?<!:)//[^\n]*")

GENERATION_TEMPERATURE = 1.0


class ExtractionError(Exception):
    """Raised when the model response contains no fenced code block."""
    pass


def parse_image_data_url(image: str) -> Tuple[str, str]:
    """
    Split a data URL into (media_type, base64_data).

    JPEG is used only when the URL declares it; everything else is sent as PNG.
    A bare base64 string (no "data:" prefix) is accepted as PNG.
    """
    media_type = "image/jpeg" if image.startswith("data:image/jpeg") else "image/png"
    data = image.split(",", 1)[1] if "," in image else image
    return media_type, data


def extract_code(text: str) -> str:
    """Return the trimmed content of the first fenced code block."""
    match = CODE_BLOCK_RE.search(text or "")
    if not match or not match.group(1).strip():
        raise ExtractionError("Failed to extract code from model response")
    return match.group(1).strip()


def strip_comments(code: str) -> str:
    """Remove /* */ and // comments, then drop blank lines."""
    code = COMMENT_RE.sub("", code)
    lines = [line.rstrip() for line in code.splitlines()]
    return "\n".join(line for line in lines if line.strip())


class CodeGenerator:
    """Generates a component from a sketch image with a single model call."""

    def __init__(self, model: ModelClient):
        self.model = model

    async def generate(
        self,
        image: str,
        style_guide: Optional[str] = None,
        custom_prompt: Optional[str] = None,
        color_palette: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Generate component source for the given sketch.

        Raises:
            ExtractionError: If the response has no fenced code block
            ModelError: If the model request fails
        """
        prompt = create_website_prompt(style_guide, custom_prompt, color_palette)
        media_type, data = parse_image_data_url(image)

        text = await self.model.generate(
            prompt,
            image=ImagePayload(media_type=media_type, data=data),
            temperature=GENERATION_TEMPERATURE,
        )

        try:
            code = extract_code(text)
        except ExtractionError:
            logger.error(f"[{self.model.session_id}] No code block found in response: {text[:200]}")
            raise

        code = strip_comments(code)
        logger.info(f"[{self.model.session_id}] Generated component ({len(code)} chars)")
        return code
