"""
Core type definitions for the image router.
"""
from typing import Dict, List, Optional, Any, Literal
from enum import Enum
from pydantic import BaseModel, Field
import uuid
from datetime import datetime

from imgrouter.images.resolver import ResolvedImage


class Role(str, Enum):
    """Message roles in a chat conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class FinishReason(str, Enum):
    """Reasons why a generation might stop."""
    STOP = "stop"


class MessagePart(BaseModel):
    """One normalized piece of a chat message: text or an image reference."""
    kind: Literal["text", "image"]
    text: Optional[str] = None
    url: Optional[str] = None
    detail: Optional[str] = None


class NormalizedMessage(BaseModel):
    """A chat message reduced to ordered text and image parts."""
    role: str = Role.USER.value
    parts: List[MessagePart] = Field(default_factory=list)


class NormalizedChatRequest(BaseModel):
    """A chat completion request after shape normalization."""
    model: Optional[str] = None
    size: Optional[str] = None
    stream: bool = False
    messages: List[NormalizedMessage] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class ImageTaskRequest(BaseModel):
    """What a provider needs to generate or edit an image."""
    model: Optional[str] = None
    size: Optional[str] = None
    prompt: str = ""
    images: List[str] = Field(default_factory=list, description="Images in the form sent upstream")
    source_images: List[str] = Field(default_factory=list, description="Caller image references as received")
    resolved_images: List[ResolvedImage] = Field(
        default_factory=list, description="Caller images already fetched and decoded, in order"
    )


class ImageReference(BaseModel):
    """A generated image: a remote URL or inline base64 (bare or data URL)."""
    url: Optional[str] = None
    b64_json: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.url and self.url.strip()) and not (self.b64_json and self.b64_json.strip())

    def to_link(self, default_media_type: str = "image/png") -> str:
        """Return something a Markdown image link can point at."""
        if self.url:
            return self.url
        if self.b64_json and self.b64_json.startswith("data:"):
            return self.b64_json
        return f"data:{default_media_type};base64,{self.b64_json or ''}"

    def to_markdown(self) -> str:
        return f"![Generated Image]({self.to_link()})"


class JobStatus(str, Enum):
    """Normalized status of an asynchronous generation job."""
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        text = str(value or "").strip().upper()
        if text in ("SUCCEED", "SUCCEEDED", "SUCCESS"):
            return cls.SUCCEEDED
        if text in ("FAILED", "FAIL", "FAILURE"):
            return cls.FAILED
        if text in ("PENDING", "QUEUED", "RUNNING", "PROCESSING"):
            return cls.PENDING
        return cls.UNKNOWN


class TaskResult(BaseModel):
    """Outcome of a provider job that finished successfully."""
    task_id: Optional[str] = None
    images: List[ImageReference] = Field(default_factory=list)
    attempts: int = 0
    elapsed_ms: int = 0


class ChatMessage(BaseModel):
    """An assistant message in a chat completion response."""
    role: Role = Role.ASSISTANT
    content: str


class ChatCompletionResponseChoice(BaseModel):
    """A single completion choice in a chat completion response."""
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[FinishReason] = FinishReason.STOP


class ChatCompletionStreamResponseChoice(BaseModel):
    """A single completion choice in a streaming chat completion response."""
    index: int = 0
    delta: Dict[str, Any]
    finish_reason: Optional[FinishReason] = None


class Usage(BaseModel):
    """Token usage information; image providers report none."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


def _completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4()}"


def _now() -> int:
    return int(datetime.now().timestamp())


class ChatCompletionResponse(BaseModel):
    """Response from a chat completion request."""
    id: str = Field(default_factory=_completion_id)
    object: str = "chat.completion"
    created: int = Field(default_factory=_now)
    model: str
    choices: List[ChatCompletionResponseChoice]
    usage: Usage = Field(default_factory=Usage)


class ChatCompletionStreamResponse(BaseModel):
    """Response chunk from a streaming chat completion request."""
    id: str
    object: str = "chat.completion.chunk"
    created: int = Field(default_factory=_now)
    model: str
    choices: List[ChatCompletionStreamResponseChoice]


# For type hinting
JsonDict = Dict[str, Any]
