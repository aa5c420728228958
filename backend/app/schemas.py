"""Request and response models for the HTTP API.

Field names follow the JSON the browser client sends (camelCase).
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ColorPalette(BaseModel):
    primary: str
    secondary: str
    accent: str
    background: str
    text: str


class GenerationRequest(BaseModel):
    image: str = ""
    styleGuide: Optional[str] = None
    customPrompt: Optional[str] = None
    colorPalette: Optional[ColorPalette] = None
    sandboxId: Optional[str] = None

    model_config = {"frozen": True}


class AgentEditRequest(BaseModel):
    prompt: str = ""
    currentCode: str = ""
    sandboxId: Optional[str] = None
    imageData: Optional[str] = None

    model_config = {"frozen": True}


class SandboxKillRequest(BaseModel):
    sandboxId: Optional[str] = None


class TerminalRequest(BaseModel):
    sandboxId: Optional[str] = None
    command: Optional[str] = None


class SandboxUpdateRequest(BaseModel):
    sandboxId: Optional[str] = None
    code: Optional[str] = None


class FileActionRequest(BaseModel):
    sandboxId: Optional[str] = None
    action: str = ""
    path: Optional[str] = None
    content: Optional[str] = None
    newPath: Optional[str] = None


class FileItem(BaseModel):
    name: str
    path: str
    isDirectory: bool
    permissions: str
    size: str


class TerminalResponse(BaseModel):
    stdout: str
    stderr: str
    exitCode: int


class SandboxInitResponse(BaseModel):
    success: bool
    sandboxId: Optional[str] = None
    url: Optional[str] = None
    cached: bool = False
    logs: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    active_sandboxes: int
    prewarmed_sandbox: Optional[str] = None
    e2b_configured: bool
    anthropic_configured: bool
