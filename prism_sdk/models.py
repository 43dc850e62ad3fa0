"""
Data models for Prism SDK requests and responses.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════

class PrismError(Exception):
    """Base exception for all Prism SDK errors."""

    def __init__(self, message: str, status_code: int = 0, detail: str = ""):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)

    def __str__(self) -> str:
        base = f"[{self.status_code}] {self.message}" if self.status_code else self.message
        return f"{base} – {self.detail}" if self.detail else base


class ValidationError(PrismError):
    """Raised before any request is sent when user input is missing or malformed."""
    pass


class APIError(PrismError):
    """
    Returned (not raised) when a request fails at the transport or HTTP level.

    ``message`` holds the HTTP status text (e.g. ``"Not Found"``).
    """
    pass


class AuthenticationError(APIError):
    """Returned when the API key is invalid or revoked."""
    pass


class PermissionDeniedError(APIError):
    """Returned when the API key may not access the resource."""
    pass


class NotFoundError(APIError):
    """Returned when a resource is not found."""
    pass


class RateLimitError(APIError):
    """Returned when rate limit is exceeded."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


# ═══════════════════════════════════════════════════════════
# ENTITIES
# ═══════════════════════════════════════════════════════════

class Knowledge(BaseModel):
    """A single ingested knowledge item."""
    id: int
    name: str
    created: str
    updated: str
    available: bool

    model_config = {"frozen": True, "extra": "allow"}

    @property
    def is_available(self) -> bool:
        """True once the server has finished ingesting the item."""
        return self.available


class KnowledgeBase(BaseModel):
    """A named collection of knowledge items owned by a user."""
    id: int
    owner_id: int
    name: str
    created: str
    updated: str
    knowledges: List[Knowledge] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "allow"}

    @property
    def available_knowledges(self) -> List[Knowledge]:
        return [k for k in self.knowledges if k.available]

    def get_knowledge(self, knowledge_id: int) -> Optional[Knowledge]:
        for knowledge in self.knowledges:
            if knowledge.id == knowledge_id:
                return knowledge
        return None

    def __str__(self) -> str:
        return f"{self.name} (#{self.id}, {len(self.knowledges)} knowledges)"


# ═══════════════════════════════════════════════════════════
# REQUEST BODIES
# ═══════════════════════════════════════════════════════════

class KnowledgeSource(str, Enum):
    """Supported ways of creating a knowledge item."""
    URL = "url"
    TEXT = "text"


class KnowledgeBaseCreateRequest(BaseModel):
    name: str


class KnowledgeCreateRequest(BaseModel):
    """
    Body for the knowledge_from_url / knowledge_from_text endpoints.

    Unset fields are left out of the serialized JSON.
    """
    name: str
    url: Optional[str] = None
    text: Optional[str] = None
    recursion: Optional[bool] = None
    max_recursion: Optional[int] = None
    only_base_url: Optional[bool] = None

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)


class ReplyRequest(BaseModel):
    """Body for the /response/ and /response_stream/ endpoints."""
    user_prompt: str
    conversation_id: Optional[int] = None
    knowledge_base: Optional[str] = None
    max_tokens: Optional[int] = None
    num_results: Optional[int] = None
    model: Optional[str] = None

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)
