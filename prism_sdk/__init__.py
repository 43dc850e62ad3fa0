"""
Prism SDK – Python client for the Prism knowledge-base API.

Usage:
    from prism_sdk import prism

    client = prism(api_key="pk_...")

    kb = client.knowledge_base.create("Product docs")
    client.knowledge.create("text", "FAQ", kb.id, text="Q: ... A: ...")

    reply = client.reply.create("What is in the FAQ?", knowledge_base="Product docs")
    print(reply.json())
"""

__version__ = "1.0.0"

from prism_sdk.client import (
    DEFAULT_API_URL,
    KnowledgeBaseClient,
    KnowledgeClient,
    PrismClient,
    ReplyClient,
    ReplyStream,
    prism,
)
from prism_sdk.models import (
    APIError,
    AuthenticationError,
    Knowledge,
    KnowledgeBase,
    KnowledgeSource,
    NotFoundError,
    PermissionDeniedError,
    PrismError,
    RateLimitError,
    ValidationError,
)

__all__ = [
    "DEFAULT_API_URL",
    "prism",
    "PrismClient",
    "KnowledgeBaseClient",
    "KnowledgeClient",
    "ReplyClient",
    "ReplyStream",
    "Knowledge",
    "KnowledgeBase",
    "KnowledgeSource",
    "PrismError",
    "ValidationError",
    "APIError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "RateLimitError",
]
