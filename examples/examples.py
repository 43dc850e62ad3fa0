"""
Prism SDK – Usage Examples
==========================

Set PRISM_API_KEY (and optionally PRISM_API_URL) in .env or the environment.
"""

import asyncio
import os

from dotenv import load_dotenv

from prism_sdk import APIError, KnowledgeBase, ValidationError, prism


# ══════════════════════════════════════════════════════════
# CONFIGURATION
# ══════════════════════════════════════════════════════════
load_dotenv()

API_KEY = os.getenv("PRISM_API_KEY")
API_URL = os.getenv("PRISM_API_URL", "https://api.prism-ai.ch")

if not API_KEY:
    raise RuntimeError("Missing PRISM_API_KEY. Define it in .env or environment variables.")


# ─────────────────────────────────────────────────────────
# 1. BUILD A KNOWLEDGE BASE
# ─────────────────────────────────────────────────────────

def example_knowledge_base():
    """Create a knowledge base and feed it a site crawl and some text."""
    client = prism(api_key=API_KEY, api_url=API_URL)

    kb = client.knowledge_base.create("Product docs")
    if not isinstance(kb, KnowledgeBase):
        print(f"❌ Could not create knowledge base: {kb}")
        return None
    print(f"✅ Created {kb}")

    site = client.knowledge.create(
        "url",
        "Documentation site",
        kb.id,
        url="https://docs.example.com",
        recursion=True,
        max_recursion=2,
        only_base_url=True,
    )
    print(f"🌐 {site}")

    faq = client.knowledge.create("text", "FAQ", kb.id, text="Q: Is there a free tier? A: Yes.")
    print(f"📄 {faq}")

    refreshed = client.knowledge_base.get(kb.id)
    if not isinstance(refreshed, KnowledgeBase):
        print(f"❌ Could not reload knowledge base: {refreshed}")
        return kb
    kb = refreshed
    print(f"📚 {len(kb.available_knowledges)}/{len(kb.knowledges)} knowledges ingested")
    return kb


# ─────────────────────────────────────────────────────────
# 2. INPUT VALIDATION
# ─────────────────────────────────────────────────────────

def example_validation():
    """Bad input is rejected before any request is sent."""
    client = prism(api_key=API_KEY, api_url=API_URL)
    try:
        client.knowledge.create("url", "Broken", 1, url="not a url")
    except ValidationError as e:
        print(f"⚠️  {e.message}")


# ─────────────────────────────────────────────────────────
# 3. REPLIES
# ─────────────────────────────────────────────────────────

def example_reply():
    """Ask a question grounded in a knowledge base."""
    client = prism(api_key=API_KEY, api_url=API_URL)
    response = client.reply.create(
        "Is there a free tier?",
        knowledge_base="Product docs",
        num_results=3,
    )
    if isinstance(response, APIError):
        print(f"❌ {response}")
        return
    print(response.json())


def example_stream():
    """Print a reply as it is generated (sync)."""
    client = prism(api_key=API_KEY, api_url=API_URL)
    chunks = client.reply.stream("Summarize the documentation", knowledge_base="Product docs")
    if isinstance(chunks, APIError):
        print(f"❌ {chunks}")
        return
    for chunk in chunks:
        print(chunk, end="", flush=True)
    print()


async def example_async_stream():
    """Stream a reply with asyncio, with a caller-side timeout."""
    client = prism(api_key=API_KEY, api_url=API_URL)
    stream = await asyncio.wait_for(client.reply.astream("What changed in v2?"), timeout=30)
    if isinstance(stream, APIError):
        print(f"❌ {stream}")
        return
    async with stream:
        async for chunk in stream:
            print(chunk, end="", flush=True)
    print()


if __name__ == "__main__":
    kb = example_knowledge_base()
    example_validation()
    example_reply()
    example_stream()
    asyncio.run(example_async_stream())
    if kb is not None:
        print(prism(api_key=API_KEY, api_url=API_URL).knowledge_base.delete(kb.id))
