"""Request shapes for the text-generation service."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One chat turn sent to the generation service."""

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionOptions(BaseModel):
    """Per-call provider options."""

    api_key: Optional[str] = Field(None, description="Overrides the client's configured key")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=4096, gt=0)


class CompletionRequest(BaseModel):
    """Model id, messages and output mode for one completion."""

    model_id: Optional[str] = Field(None, description="Overrides the client's configured model")
    messages: List[ChatMessage]
    json_mode: bool = False

    @property
    def system_instruction(self) -> Optional[str]:
        """Concatenated system messages, or None."""
        parts = [m.content for m in self.messages if m.role == "system"]
        return "\n\n".join(parts) if parts else None

    @property
    def user_content(self) -> str:
        """Concatenated non-system messages."""
        return "\n\n".join(m.content for m in self.messages if m.role != "system")
