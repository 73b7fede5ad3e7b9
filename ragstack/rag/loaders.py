"""Document loaders — turn a source into LangChain Documents ready for embedding.

Supported:
  - URL  (http/https)   fetched via httpx, HTML stripped to text
  - anything else       treated as inline content
"""

from __future__ import annotations

import hashlib
import logging
import re

import httpx
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

logger = logging.getLogger(__name__)


def _is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def _strip_html(html: str) -> str:
    """Very lightweight HTML → plain text stripper."""
    # Remove script / style blocks
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", html, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


async def _fetch_url(url: str, timeout: float) -> tuple[str, str]:
    """Returns (title, text). Raises httpx errors on failure."""
    async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as client:
        resp = await client.get(url, headers={"User-Agent": "ragstack/0.1"})
        resp.raise_for_status()

    html = resp.text
    title_m = re.search(r"<title[^>]*>(.*?)</title>", html, re.IGNORECASE | re.DOTALL)
    title = title_m.group(1).strip() if title_m else url
    return title, _strip_html(html)


class WebLoader:
    """Loads a web page or a piece of inline content."""

    type = "WebLoader"

    def __init__(
        self,
        url_or_content: str,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        timeout: float = 15.0,
    ) -> None:
        self.source = url_or_content
        self.timeout = timeout
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size, chunk_overlap=chunk_overlap
        )

    @property
    def unique_id(self) -> str:
        digest = hashlib.sha256(f"{self.type}_{self.source}".encode()).hexdigest()
        return digest[:32]

    @property
    def metadata(self) -> dict[str, str]:
        kind = "url" if _is_url(self.source) else "content"
        return {"type": kind, "source": self.source[:400]}

    async def load(self) -> tuple[str, str]:
        """Returns (title, text)."""
        if _is_url(self.source):
            return await _fetch_url(self.source, self.timeout)
        return "inline content", self.source

    async def load_chunks(self) -> list[Document]:
        """Split the loaded text into Documents with ids and loader metadata."""
        title, text = await self.load()
        if not text.strip():
            raise ValueError(f"No text content found in '{self.source[:80]}'")

        source = self.source if _is_url(self.source) else "inline"
        chunks = self.splitter.split_text(text)
        logger.info(f"Loaded '{title}': {len(text)} chars, {len(chunks)} chunks")
        return [
            Document(
                page_content=chunk,
                metadata={
                    "id": f"{self.unique_id}-{i}",
                    "unique_loader_id": self.unique_id,
                    "source": source[:400],
                    "title": title,
                },
            )
            for i, chunk in enumerate(chunks)
        ]
