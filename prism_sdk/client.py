"""
Prism Client – Main entry point for the SDK.

Wraps the Prism knowledge-base API: knowledge bases, knowledge items
ingested from URLs or raw text, and prompt replies (buffered or streamed).
Supports both synchronous and asynchronous interfaces.

HTTP failures are returned as ``APIError`` values; malformed input raises
``ValidationError`` before anything is sent.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import queue
import threading
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Iterator, Optional, Type, Union

import httpx
import pydantic

from prism_sdk.models import (
    APIError,
    AuthenticationError,
    Knowledge,
    KnowledgeBase,
    KnowledgeBaseCreateRequest,
    KnowledgeCreateRequest,
    KnowledgeSource,
    NotFoundError,
    PermissionDeniedError,
    PrismError,
    RateLimitError,
    ReplyRequest,
    ValidationError,
)


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.prism-ai.ch"
NO_BODY_MESSAGE = "No response body."

_JSON = "application/json"
_STREAM_ACCEPT = "text/response-stream"


# ──────────────────────────────────────────────────────────
# RESPONSE NORMALIZATION
# ──────────────────────────────────────────────────────────

def _status_error(response: httpx.Response) -> APIError:
    """Build the error value for a non-success HTTP response."""
    status = response.status_code
    message = response.reason_phrase or f"HTTP {status}"
    detail = response.text

    logger.warning("%s %s -> %d %s", response.request.method, response.request.url.path, status, message)

    if status == 401:
        return AuthenticationError(message, status_code=status, detail=detail)
    elif status == 403:
        return PermissionDeniedError(message, status_code=status, detail=detail)
    elif status == 404:
        return NotFoundError(message, status_code=status, detail=detail)
    elif status == 429:
        retry_after = _retry_after(response.headers.get("Retry-After"))
        return RateLimitError(message, retry_after=retry_after, status_code=status, detail=detail)
    return APIError(message, status_code=status, detail=detail)


def _retry_after(value: Optional[str], default: int = 60) -> int:
    """Seconds to wait, from a ``Retry-After`` header in delay or HTTP-date form."""
    if not value:
        return default
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))


def _parse(model: Type[pydantic.BaseModel], data: Any) -> Any:
    """Validate ``data`` as ``model``; unexpected shapes are passed through as decoded JSON."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.warning("Response does not match %s, returning raw JSON: %s", model.__name__, exc)
        return data


def _transport_error(exc: httpx.RequestError) -> APIError:
    logger.warning("Request failed: %r", exc)
    return APIError(str(exc) or exc.__class__.__name__)


def _supplied(**fields: Any) -> dict:
    """Keep only the optional fields the caller actually supplied (truthy)."""
    return {key: value for key, value in fields.items() if value}


def _is_valid_url(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        return False
    return bool(url.scheme) and bool(url.host)


def _message_from(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        return str(data.get("message") or data.get("detail") or "")
    return str(data)


# ──────────────────────────────────────────────────────────
# BASE CLIENT
# ──────────────────────────────────────────────────────────

class BaseClient:
    """
    Shared configuration for every resource client: the API URL and the
    fixed header set sent with each request.

    No connection is kept between calls; each operation opens its own
    ``httpx.AsyncClient`` and closes it when done.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Content-Type": _JSON,
            "Accept": _JSON,
            "Authorization": api_key,
        }
        self._timeout = timeout
        self._transport = transport

    def _open(self, accept: str = _JSON) -> httpx.AsyncClient:
        headers = {**self.headers, "Accept": accept}
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _safe_call(
        self,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        allow_empty: bool = False,
    ) -> Any:
        """
        Send one request and return the decoded JSON body, or an ``APIError``
        when the transport fails or the status is not a success.
        """
        logger.debug("%s %s", method, path)
        try:
            async with self._open() as http:
                response = await http.request(method, path, json=payload)
        except httpx.RequestError as exc:
            return _transport_error(exc)

        if not response.is_success:
            return _status_error(response)
        if not response.content:
            return "" if allow_empty else APIError(NO_BODY_MESSAGE, status_code=response.status_code)
        try:
            return response.json()
        except ValueError:
            logger.warning("%s %s returned a non-JSON body", method, path)
            return APIError(
                "Invalid JSON response.",
                status_code=response.status_code,
                detail=response.text,
            )

    def _sync(self, coro):
        """Run an async coroutine synchronously."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                return pool.submit(asyncio.run, coro).result()
        else:
            return asyncio.run(coro)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(api_url={self.api_url!r})"


# ──────────────────────────────────────────────────────────
# KNOWLEDGE BASES
# ──────────────────────────────────────────────────────────

class KnowledgeBaseClient(BaseClient):
    """Create, fetch and delete knowledge bases."""

    async def acreate(self, name: str) -> Union[KnowledgeBase, dict, APIError]:
        """Create a knowledge base named ``name`` (async)."""
        body = KnowledgeBaseCreateRequest(name=name)
        data = await self._safe_call("POST", "/users/knowledge_base/", body.model_dump())
        if isinstance(data, APIError):
            return data
        return _parse(KnowledgeBase, data)

    def create(self, name: str) -> Union[KnowledgeBase, dict, APIError]:
        """Create a knowledge base (sync)."""
        return self._sync(self.acreate(name))

    async def aget(self, kb_id: int) -> Union[KnowledgeBase, dict, APIError]:
        """Fetch a knowledge base with its knowledge items (async)."""
        data = await self._safe_call("GET", f"/users/knowledge_base/{kb_id}/")
        if isinstance(data, APIError):
            return data
        return _parse(KnowledgeBase, data)

    def get(self, kb_id: int) -> Union[KnowledgeBase, dict, APIError]:
        """Fetch a knowledge base (sync)."""
        return self._sync(self.aget(kb_id))

    async def adelete(self, kb_id: int) -> Union[str, APIError]:
        """Delete a knowledge base and return the server message (async)."""
        data = await self._safe_call("DELETE", f"/knowledge_base/{kb_id}/", allow_empty=True)
        if isinstance(data, APIError):
            return data
        return _message_from(data)

    def delete(self, kb_id: int) -> Union[str, APIError]:
        """Delete a knowledge base (sync)."""
        return self._sync(self.adelete(kb_id))


# ──────────────────────────────────────────────────────────
# KNOWLEDGE ITEMS
# ──────────────────────────────────────────────────────────

class KnowledgeClient(BaseClient):
    """Ingest, fetch and delete knowledge items inside a knowledge base."""

    def _prepare(
        self,
        method: Union[KnowledgeSource, str],
        name: str,
        kb_id: int,
        url: Optional[str],
        text: Optional[str],
        recursion: Optional[bool],
        max_recursion: Optional[int],
        only_base_url: Optional[bool],
    ):
        """Validate the input and return ``(path, body)`` for the request."""
        try:
            source = KnowledgeSource(method)
        except ValueError:
            raise ValidationError("Invalid method. Must be 'url' or 'text'.") from None

        if source is KnowledgeSource.URL:
            if not _is_valid_url(url):
                raise ValidationError("Invalid or missing URL.")
            body = KnowledgeCreateRequest(
                name=name,
                url=url,
                **_supplied(
                    recursion=recursion,
                    max_recursion=max_recursion,
                    only_base_url=only_base_url,
                ),
            )
            return f"/users/knowledge_base/{kb_id}/knowledge_from_url/", body

        if not text:
            raise ValidationError("Missing text.")
        body = KnowledgeCreateRequest(name=name, text=text)
        return f"/users/knowledge_base/{kb_id}/knowledge_from_text/", body

    async def acreate(
        self,
        method: Union[KnowledgeSource, str],
        name: str,
        kb_id: int,
        *,
        url: Optional[str] = None,
        text: Optional[str] = None,
        recursion: Optional[bool] = None,
        max_recursion: Optional[int] = None,
        only_base_url: Optional[bool] = None,
    ) -> Union[KnowledgeBase, Knowledge, dict, APIError]:
        """
        Add a knowledge item to knowledge base ``kb_id`` (async).

        Args:
            method: ``"url"`` to ingest a web page, ``"text"`` to ingest raw text.
            name: Name of the new knowledge item.
            kb_id: Target knowledge base.
            url: Page to ingest (``method="url"``).
            text: Content to ingest (``method="text"``).
            recursion: Also crawl pages linked from ``url``.
            max_recursion: Crawl depth limit.
            only_base_url: Restrict the crawl to the origin of ``url``.

        Returns:
            The created resource as returned by the server, or an ``APIError``.

        Raises:
            ValidationError: Unknown method, bad or missing URL, missing text.
        """
        path, body = self._prepare(
            method, name, kb_id, url, text, recursion, max_recursion, only_base_url
        )
        data = await self._safe_call("POST", path, body.to_json())
        if isinstance(data, APIError):
            return data
        if isinstance(data, dict) and "knowledges" in data:
            return _parse(KnowledgeBase, data)
        return _parse(Knowledge, data)

    def create(
        self, method: Union[KnowledgeSource, str], name: str, kb_id: int, **kwargs
    ) -> Union[KnowledgeBase, Knowledge, dict, APIError]:
        """Add a knowledge item (sync). See ``acreate`` for args."""
        return self._sync(self.acreate(method, name, kb_id, **kwargs))

    async def aget(self, knowledge_id: int) -> Union[Knowledge, dict, APIError]:
        """Fetch a knowledge item (async)."""
        data = await self._safe_call("GET", f"/knowledge/{knowledge_id}/")
        if isinstance(data, APIError):
            return data
        return _parse(Knowledge, data)

    def get(self, knowledge_id: int) -> Union[Knowledge, dict, APIError]:
        """Fetch a knowledge item (sync)."""
        return self._sync(self.aget(knowledge_id))

    async def adelete(self, knowledge_id: int) -> Union[str, APIError]:
        """Delete a knowledge item and return the server message (async)."""
        data = await self._safe_call("DELETE", f"/knowledge/{knowledge_id}/", allow_empty=True)
        if isinstance(data, APIError):
            return data
        return _message_from(data)

    def delete(self, knowledge_id: int) -> Union[str, APIError]:
        """Delete a knowledge item (sync)."""
        return self._sync(self.adelete(knowledge_id))


# ──────────────────────────────────────────────────────────
# REPLIES
# ──────────────────────────────────────────────────────────

class ReplyStream:
    """
    An open streamed reply.

    Iterate it once with ``async for`` to receive decoded text chunks in
    the order the server sent them. The underlying response and HTTP
    client are closed when the iteration ends, fails, or ``aclose()`` is
    called.

    Example:
        stream = await client.reply.astream("Summarize the docs")
        async with stream:
            async for chunk in stream:
                print(chunk, end="", flush=True)
    """

    def __init__(
        self,
        response: httpx.Response,
        http: httpx.AsyncClient,
        first_chunk: str,
        chunks: AsyncIterator[str],
    ):
        self._response = response
        self._http = http
        self._first_chunk = first_chunk
        self._chunks = chunks
        self._consumed = False
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise PrismError("Reply stream has already been consumed.")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            yield self._first_chunk
            async for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def atext(self) -> str:
        """Consume the whole stream and return it as one string."""
        return "".join([chunk async for chunk in self])

    async def aclose(self):
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ReplyStream(status_code={self.status_code}, {state})"


class ReplyClient(BaseClient):
    """Ask for replies to a prompt, optionally grounded in a knowledge base."""

    @staticmethod
    def _body(
        prompt: str,
        conversation_id: Optional[int],
        knowledge_base: Optional[str],
        max_tokens: Optional[int],
        num_results: Optional[int],
        model: Optional[str],
    ) -> dict:
        request = ReplyRequest(
            user_prompt=prompt,
            **_supplied(
                conversation_id=conversation_id,
                knowledge_base=knowledge_base,
                max_tokens=max_tokens,
                num_results=num_results,
                model=model,
            ),
        )
        return request.to_json()

    async def acreate(
        self,
        prompt: str,
        *,
        conversation_id: Optional[int] = None,
        knowledge_base: Optional[str] = None,
        max_tokens: Optional[int] = None,
        num_results: Optional[int] = None,
        model: Optional[str] = None,
    ) -> Union[httpx.Response, APIError]:
        """
        Request a complete reply via /response/ (async).

        Args:
            prompt: The user prompt.
            conversation_id: Continue an existing conversation.
            knowledge_base: Name of the knowledge base to answer from.
            max_tokens: Upper bound on generated tokens.
            num_results: Number of knowledge chunks to retrieve.
            model: Model to generate the reply with.

        Returns:
            The raw ``httpx.Response`` (body already read, parse it with
            ``.json()``), or an ``APIError`` if the request failed or the
            server sent no body.
        """
        payload = self._body(prompt, conversation_id, knowledge_base, max_tokens, num_results, model)
        logger.debug("POST /response/")
        try:
            async with self._open(accept=_JSON) as http:
                response = await http.post("/response/", json=payload)
        except httpx.RequestError as exc:
            return _transport_error(exc)

        if not response.is_success:
            return _status_error(response)
        if not response.content:
            return APIError(NO_BODY_MESSAGE, status_code=response.status_code)
        return response

    def create(self, prompt: str, **kwargs) -> Union[httpx.Response, APIError]:
        """Request a complete reply (sync). See ``acreate`` for args."""
        return self._sync(self.acreate(prompt, **kwargs))

    async def astream(
        self,
        prompt: str,
        *,
        conversation_id: Optional[int] = None,
        knowledge_base: Optional[str] = None,
        max_tokens: Optional[int] = None,
        num_results: Optional[int] = None,
        model: Optional[str] = None,
    ) -> Union[ReplyStream, APIError]:
        """
        Request a streamed reply via /response_stream/ (async).

        Same args as ``acreate``. Returns an open ``ReplyStream`` once the
        first chunk has arrived, or an ``APIError`` when the request failed
        or the server sent no body.
        """
        payload = self._body(prompt, conversation_id, knowledge_base, max_tokens, num_results, model)
        logger.debug("POST /response_stream/")
        http = self._open(accept=_STREAM_ACCEPT)
        try:
            request = http.build_request("POST", "/response_stream/", json=payload)
            response = await http.send(request, stream=True)
        except httpx.RequestError as exc:
            await http.aclose()
            return _transport_error(exc)

        if not response.is_success:
            await response.aread()
            await response.aclose()
            await http.aclose()
            return _status_error(response)

        chunks = response.aiter_text()
        try:
            first_chunk = await chunks.__anext__()
        except StopAsyncIteration:
            await response.aclose()
            await http.aclose()
            return APIError(NO_BODY_MESSAGE, status_code=response.status_code)
        except httpx.RequestError as exc:
            await response.aclose()
            await http.aclose()
            return _transport_error(exc)

        return ReplyStream(response, http, first_chunk, chunks)

    def stream(self, prompt: str, **kwargs) -> Union[Iterator[str], APIError]:
        """
        Request a streamed reply (sync).

        Same args as ``astream``. The stream runs on a worker thread; the
        returned iterator yields text chunks as they arrive and can be
        consumed once.

        Example:
            chunks = client.reply.stream("What is in my notes?")
            if isinstance(chunks, APIError):
                raise chunks
            for chunk in chunks:
                print(chunk, end="", flush=True)
        """
        q = queue.Queue()
        sentinel = object()
        stop = threading.Event()

        async def _consume():
            try:
                result = await self.astream(prompt, **kwargs)
                q.put(("result", result))
                if isinstance(result, ReplyStream):
                    try:
                        async for chunk in result:
                            if stop.is_set():
                                break
                            q.put(("chunk", chunk))
                    finally:
                        await result.aclose()
            except Exception as e:
                q.put(("raise", e))
            finally:
                q.put(sentinel)

        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        pool.submit(asyncio.run, _consume())

        first = q.get()
        kind, value = first
        if kind == "raise":
            pool.shutdown(wait=False)
            raise value
        if isinstance(value, APIError):
            pool.shutdown(wait=False)
            return value
        return self._drain(q, sentinel, pool, stop)

    @staticmethod
    def _drain(q: queue.Queue, sentinel: object, pool, stop: threading.Event) -> Iterator[str]:
        """Yield chunks from the worker; closing early tells the worker to close the stream."""
        try:
            while True:
                item = q.get()
                if item is sentinel:
                    break
                kind, value = item
                if kind == "raise":
                    raise value
                yield value
        finally:
            stop.set()
            pool.shutdown(wait=False)


# ──────────────────────────────────────────────────────────
# FACADE
# ──────────────────────────────────────────────────────────

class PrismClient:
    """
    Official Prism Python client.

    Groups the three resource clients behind one object sharing the same
    API URL and credentials.

    Examples:
        client = PrismClient(api_key="pk_...")

        kb = client.knowledge_base.create("Product docs")
        client.knowledge.create("url", "Homepage", kb.id, url="https://example.com", recursion=True)

        reply = client.reply.create("What does the product do?", knowledge_base="Product docs")
        print(reply.json())
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Prism client.

        Args:
            api_key: Credential sent verbatim in the ``Authorization`` header.
            api_url: Prism server URL (default ``https://api.prism-ai.ch``).
            timeout: Request timeout in seconds; ``None`` waits indefinitely.
            transport: Custom httpx transport (e.g. ``httpx.MockTransport``).

        Raises:
            ValueError: If api_key is empty.
        """
        if not api_key:
            raise ValueError("Provide an api_key")

        self.api_url = api_url.rstrip("/")
        options = dict(api_url=self.api_url, timeout=timeout, transport=transport)
        self.knowledge_base = KnowledgeBaseClient(api_key, **options)
        self.knowledge = KnowledgeClient(api_key, **options)
        self.reply = ReplyClient(api_key, **options)

    def __repr__(self) -> str:
        return f"PrismClient(api_url={self.api_url!r})"


def prism(api_key: str, **kwargs) -> PrismClient:
    """Build a ``PrismClient`` for ``api_key``. See ``PrismClient`` for options."""
    return PrismClient(api_key, **kwargs)
