"""
Prism CLI – Command line interface for the Prism API.

Usage:
    prism config --api-key pk_...
    prism kb create "Product docs"
    prism kb get 12
    prism knowledge url 12 "Homepage" https://example.com --recursion --max-recursion 3
    prism knowledge text 12 "FAQ" "Q: ... A: ..."
    prism ask "What does the product do?" --kb "Product docs" --stream
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import httpx

from prism_sdk import APIError, PrismClient, PrismError, RateLimitError, ValidationError
from prism_sdk.client import DEFAULT_API_URL


# ═══════════════════════════════════════════════════════════
# CONFIG
# ═══════════════════════════════════════════════════════════

_CONFIG_DIR = Path.home() / ".prism"
_CONFIG_FILE = _CONFIG_DIR / "config.json"


def _load_config() -> dict:
    if _CONFIG_FILE.exists():
        return json.loads(_CONFIG_FILE.read_text())
    return {}


def _save_config(config: dict):
    _CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    _CONFIG_FILE.write_text(json.dumps(config, indent=2))
    _CONFIG_FILE.chmod(0o600)  # Owner-only read/write


def _get_client() -> PrismClient:
    """Build a PrismClient from environment variables or the config file."""
    config = _load_config()

    api_key = os.environ.get("PRISM_API_KEY") or config.get("api_key")
    url = os.environ.get("PRISM_API_URL") or config.get("url") or DEFAULT_API_URL
    timeout = os.environ.get("PRISM_TIMEOUT") or config.get("timeout")

    if not api_key:
        print("❌ No API key configured.")
        print("   Run: prism config --api-key YOUR_KEY")
        print("   Or set: export PRISM_API_KEY=...")
        sys.exit(1)

    return PrismClient(
        api_key=api_key,
        api_url=url,
        timeout=float(timeout) if timeout else None,
    )


# ═══════════════════════════════════════════════════════════
# COLORS (ANSI)
# ═══════════════════════════════════════════════════════════

class _C:
    """ANSI color codes – disabled if not a TTY."""
    _enabled = sys.stdout.isatty()

    BOLD = "\033[1m" if _enabled else ""
    YELLOW = "\033[33m" if _enabled else ""
    RED = "\033[31m" if _enabled else ""
    RESET = "\033[0m" if _enabled else ""


# ═══════════════════════════════════════════════════════════
# OUTPUT
# ═══════════════════════════════════════════════════════════

def _fail(message: str):
    print(f"{_C.RED}❌ {message}{_C.RESET}")
    sys.exit(1)


def _show(result):
    """Print an entity as JSON, or report a returned error and exit."""
    if isinstance(result, RateLimitError):
        print(f"{_C.YELLOW}⏳ Rate limited. Retry in {result.retry_after}s{_C.RESET}")
        sys.exit(1)
    if isinstance(result, APIError):
        _fail(f"Error: {result}")
    if isinstance(result, str):
        print(f"✅ {result}" if result else "✅ Done")
        return
    if isinstance(result, (dict, list)):
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return
    print(result.model_dump_json(indent=2))


# ═══════════════════════════════════════════════════════════
# COMMANDS
# ═══════════════════════════════════════════════════════════

def cmd_config(args):
    """Configure the Prism connection."""
    config = _load_config()

    if args.api_key:
        config["api_key"] = args.api_key
    if args.url:
        config["url"] = args.url.rstrip("/")
    if args.timeout:
        config["timeout"] = args.timeout

    if args.api_key or args.url or args.timeout:
        _save_config(config)
        print(f"✅ Config saved to {_CONFIG_FILE}")

    config = _load_config()
    if config:
        print(f"\n{_C.BOLD}Current configuration:{_C.RESET}")
        print(f"  URL:     {config.get('url', DEFAULT_API_URL)}")
        key = config.get("api_key", "")
        print(f"  API Key: {key[:8] + '...' if key else '(not set)'}")
        timeout = config.get("timeout")
        print(f"  Timeout: {f'{timeout}s' if timeout else '(none)'}")
    else:
        print("No configuration found.")


def cmd_kb(args):
    """Create, show or delete a knowledge base."""
    client = _get_client()
    if args.action == "create":
        _show(client.knowledge_base.create(args.target))
        return

    try:
        kb_id = int(args.target)
    except ValueError:
        _fail(f"Invalid knowledge base ID: {args.target!r}")
    if args.action == "get":
        _show(client.knowledge_base.get(kb_id))
    else:
        _show(client.knowledge_base.delete(kb_id))


def cmd_knowledge(args):
    """Ingest, show or delete a knowledge item."""
    client = _get_client()
    try:
        if args.action == "url":
            result = client.knowledge.create(
                "url",
                args.name,
                args.kb_id,
                url=args.url,
                recursion=args.recursion,
                max_recursion=args.max_recursion,
                only_base_url=args.only_base_url,
            )
        elif args.action == "text":
            result = client.knowledge.create(
                "text", args.name, args.kb_id, text=" ".join(args.text)
            )
        elif args.action == "get":
            result = client.knowledge.get(args.id)
        else:
            result = client.knowledge.delete(args.id)
    except ValidationError as e:
        _fail(f"Invalid input: {e.message}")
    _show(result)


def cmd_ask(args):
    """Send a prompt and print the reply."""
    prompt = " ".join(args.prompt)
    options = dict(
        conversation_id=args.conversation,
        knowledge_base=args.kb,
        max_tokens=args.max_tokens,
        num_results=args.num_results,
        model=args.model,
    )
    client = _get_client()

    if args.stream:
        chunks = client.reply.stream(prompt, **options)
        if isinstance(chunks, APIError):
            _show(chunks)
        try:
            for chunk in chunks:
                print(chunk, end="", flush=True)
        except (PrismError, httpx.HTTPError) as e:
            print()
            _fail(f"Stream failed: {e}")
        print()
        return

    response = client.reply.create(prompt, **options)
    if isinstance(response, APIError):
        _show(response)
    try:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(response.text)


# ═══════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════

def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        prog="prism",
        description="Prism CLI – Manage knowledge bases and ask for replies",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log HTTP requests")
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # ── config ──
    p = sub.add_parser("config", help="Configure the Prism connection")
    p.add_argument("--api-key", help="API key")
    p.add_argument("--url", help=f"API URL (default: {DEFAULT_API_URL})")
    p.add_argument("--timeout", type=float, help="Request timeout in seconds")
    p.set_defaults(func=cmd_config)

    # ── kb ──
    p = sub.add_parser("kb", help="Manage knowledge bases")
    p.add_argument("action", choices=["create", "get", "delete"])
    p.add_argument("target", help="Name (create) or knowledge base ID (get, delete)")
    p.set_defaults(func=cmd_kb)

    # ── knowledge ──
    p = sub.add_parser("knowledge", help="Manage knowledge items")
    ksub = p.add_subparsers(dest="action", required=True)

    kp = ksub.add_parser("url", help="Ingest a web page")
    kp.add_argument("kb_id", type=int)
    kp.add_argument("name")
    kp.add_argument("url")
    kp.add_argument("--recursion", action="store_true", help="Crawl linked pages")
    kp.add_argument("--max-recursion", type=int, help="Crawl depth limit")
    kp.add_argument("--only-base-url", action="store_true", help="Stay on the same origin")

    kp = ksub.add_parser("text", help="Ingest raw text")
    kp.add_argument("kb_id", type=int)
    kp.add_argument("name")
    kp.add_argument("text", nargs="+")

    for action in ("get", "delete"):
        kp = ksub.add_parser(action, help=f"{action.capitalize()} a knowledge item")
        kp.add_argument("id", type=int)
    p.set_defaults(func=cmd_knowledge)

    # ── ask ──
    p = sub.add_parser("ask", help="Ask for a reply")
    p.add_argument("prompt", nargs="+", help="The prompt")
    p.add_argument("--stream", action="store_true", help="Stream the reply as it is generated")
    p.add_argument("-c", "--conversation", type=int, help="Continue a conversation (ID)")
    p.add_argument("--kb", help="Knowledge base name to answer from")
    p.add_argument("--max-tokens", type=int)
    p.add_argument("--num-results", type=int)
    p.add_argument("--model")
    p.set_defaults(func=cmd_ask)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if not args.command:
        parser.print_help()
        sys.exit(0)

    args.func(args)


if __name__ == "__main__":
    main()
