"""Model clients for page extraction, embeddings and tool-calling chat.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present, for tests and local runs.
"""

import base64
import hashlib
import json
import logging
from typing import Any, Protocol

import numpy as np
from openai import AsyncOpenAI

from pdfchat.config import Settings, get_settings
from pdfchat.models.chat import ModelStep, ToolCall

logger = logging.getLogger(__name__)

ChatMessage = dict[str, Any]


class PageExtractor(Protocol):
    """Vision model that turns rendered pages into markdown."""

    async def extract_markdown(self, images: list[bytes], *, prompt: str) -> str:
        """Return markdown for the pages, or "" when there is no content."""
        ...


class Embedder(Protocol):
    """Embedding model producing fixed-dimension vectors."""

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, one vector per input, in input order."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...


class ChatModel(Protocol):
    """Generative model that may request tool calls."""

    async def complete(
        self, *, messages: list[ChatMessage], tools: list[dict[str, Any]]
    ) -> ModelStep:
        """Run one generation step over OpenAI-shaped messages."""
        ...


class LLMClient(PageExtractor, Embedder, ChatModel, Protocol):
    """Everything the ingestion pipeline and chat service need from a provider."""


def png_data_url(image: bytes) -> str:
    """Encode PNG bytes as a data URL for image_url message parts."""
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required).

    Embeddings are unit vectors seeded from a hash of the text, so equal
    texts always embed identically. Chat always asks for one semanticSearch
    first, then answers from whatever the tool returned.
    """

    def __init__(self, dimensions: int = 768):
        self.dimensions = dimensions

    async def extract_markdown(self, images: list[bytes], *, prompt: str) -> str:
        """Describe the rendered pages without reading them."""
        if not images:
            return ""
        digest = hashlib.sha256(b"".join(images)).hexdigest()[:12]
        return f"## Extracted pages\n\n{len(images)} page(s), content hash {digest} (stub)."

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(text) for text in texts]

    async def embed(self, text: str) -> list[float]:
        return self._vector(text)

    def _vector(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(self.dimensions)
        return (vec / np.linalg.norm(vec)).tolist()

    async def complete(
        self, *, messages: list[ChatMessage], tools: list[dict[str, Any]]
    ) -> ModelStep:
        last = messages[-1] if messages else {}
        if last.get("role") == "tool":
            return ModelStep(text=self._answer_from_tools(messages))

        tool_names = {spec["function"]["name"] for spec in tools}
        question = _message_text(last)
        if "semanticSearch" in tool_names and question:
            return ModelStep(
                tool_calls=[
                    ToolCall(id="call_stub_0", name="semanticSearch", arguments={"query": question})
                ]
            )
        return ModelStep(text="I could not find anything to answer with. (stub)")

    def _answer_from_tools(self, messages: list[ChatMessage]) -> str:
        outputs: list[dict[str, Any]] = []
        for message in reversed(messages):
            if message.get("role") != "tool":
                break
            outputs.append(json.loads(message["content"]))

        lines: list[str] = []
        for output in reversed(outputs):
            for match in output.get("results", []):
                start, end = match["startPage"], match["endPage"]
                ref = f"[Page {start}]" if start == end else f"[Pages {start}-{end}]"
                lines.append(f"- {match['content'][:200]} {ref}")
        if not lines:
            return "The document does not appear to cover this. (stub)"
        return "Here is what the document says:\n\n" + "\n".join(lines)


def _message_text(message: ChatMessage) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(part.get("text", "") for part in content if part.get("type") == "text")
    return ""


class OpenAIClient:
    """OpenAI-backed client.

    The SDK's own retries are disabled; retry budgets are owned by
    RetryPolicy at the call sites so that behaviour is the same for every
    provider.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        chat_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        dimensions: int = 768,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            base_url: Optional OpenAI-compatible endpoint
            chat_model: Model used for extraction and chat
            embedding_model: Model used for embeddings
            dimensions: Requested embedding width
        """
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        self.dimensions = dimensions

    async def extract_markdown(self, images: list[bytes], *, prompt: str) -> str:
        """Send all page images in a single multimodal request."""
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append({"type": "image_url", "image_url": {"url": png_data_url(image)}})

        response = await self.client.chat.completions.create(
            model=self.chat_model,
            messages=[{"role": "user", "content": content}],
            temperature=0,
        )
        return (response.choices[0].message.content or "").strip()

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self.client.embeddings.create(
            model=self.embedding_model,
            input=texts,
            dimensions=self.dimensions,
        )
        # Results carry their input index; do not trust response order
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def complete(
        self, *, messages: list[ChatMessage], tools: list[dict[str, Any]]
    ) -> ModelStep:
        kwargs: dict[str, Any] = {"model": self.chat_model, "messages": messages}
        if tools:
            kwargs["tools"] = tools

        response = await self.client.chat.completions.create(**kwargs)
        message = response.choices[0].message

        calls: list[ToolCall] = []
        for call in message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Model sent malformed arguments for {call.function.name}")
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            calls.append(ToolCall(id=call.id, name=call.function.name, arguments=arguments))

        return ModelStep(text=message.content or "", tool_calls=calls)


def get_llm_client(settings: Settings | None = None) -> LLMClient:
    """Factory function to get appropriate client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info(f"Using OpenAI client (chat={settings.chat_model})")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            base_url=settings.openai_base_url,
            chat_model=settings.chat_model,
            embedding_model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient(dimensions=settings.embedding_dimensions)
