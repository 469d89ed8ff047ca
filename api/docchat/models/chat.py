"""
Pydantic models for the chat transcript and the Chat API contracts.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GroundingFragment(BaseModel):
    """A citation unit returned alongside a generated answer."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., description="Position in the remote grounding list")
    text: str | None = Field(None, description="Retrieved source text")
    title: str | None = Field(None, description="Title of the source document")
    uri: str | None = Field(None, description="URI of the source document")

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


class QueryResult(BaseModel):
    """An answer plus its grounding fragments in remote order."""

    model_config = ConfigDict(frozen=True)

    answer: str
    grounding: tuple[GroundingFragment, ...] = ()

    @property
    def citations(self) -> list[GroundingFragment]:
        """Fragments that can be shown as clickable citations."""
        return [fragment for fragment in self.grounding if fragment.has_text]


class ChatMessage(BaseModel):
    """A single entry of the session transcript."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "model"] = Field(..., description="Message author")
    parts: tuple[str, ...] = Field(..., description="Text segments")
    grounding: tuple[GroundingFragment, ...] = Field(
        (), description="Grounding fragments (model messages only)"
    )

    @model_validator(mode="after")
    def _only_model_messages_are_grounded(self) -> "ChatMessage":
        if self.role == "user" and self.grounding:
            raise ValueError("User messages cannot carry grounding fragments")
        return self

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def citations(self) -> list[GroundingFragment]:
        return [fragment for fragment in self.grounding if fragment.has_text]

    @classmethod
    def from_user(cls, question: str) -> "ChatMessage":
        return cls(role="user", parts=(question,))

    @classmethod
    def from_result(cls, result: QueryResult) -> "ChatMessage":
        return cls(role="model", parts=(result.answer,), grounding=result.grounding)


class ChatRequest(BaseModel):
    """Request body for the POST /chat endpoint."""

    question: str = Field(..., min_length=1, description="The user's question")


class ChatResponse(BaseModel):
    """Response body from the POST /chat endpoint."""

    message: ChatMessage = Field(..., description="The model's answer")
    citations: list[GroundingFragment] = Field(
        default_factory=list, description="Fragments with displayable text"
    )
