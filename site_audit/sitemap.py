"""Sitemap discovery: fetch, follow sitemap indexes, filter page URLs."""

import asyncio
import logging
import xml.etree.ElementTree as ET
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

import aiohttp

from site_audit.errors import AuditError

log = logging.getLogger(__name__)

MAX_DEPTH = 5
MAX_SUBSITEMAPS = 10
REQUEST_TIMEOUT = 30.0


class SitemapError(AuditError):
    """Raised when a sitemap cannot be fetched or parsed."""


@dataclass(frozen=True, kw_only=True)
class SitemapUrl:
    loc: str
    lastmod: str | None = None
    priority: float | None = None


@dataclass(frozen=True, kw_only=True)
class ParsedSitemap:
    """Contents of one sitemap document: page entries or child sitemaps."""

    urls: Sequence[SitemapUrl] = ()
    sitemaps: Sequence[str] = ()


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str | None:
    for child in element:
        if _local_name(child.tag) == name and child.text:
            return child.text.strip()
    return None


def parse_sitemap_xml(content: str | bytes) -> ParsedSitemap:
    """Parse a ``urlset`` or ``sitemapindex`` document, ignoring namespaces.

    Raises:
        SitemapError: If the document is not well-formed XML

    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise SitemapError(f"Invalid sitemap XML: {exc}") from exc

    match _local_name(root.tag):
        case "sitemapindex":
            children = (
                _child_text(entry, "loc")
                for entry in root
                if _local_name(entry.tag) == "sitemap"
            )
            return ParsedSitemap(sitemaps=tuple(loc for loc in children if loc))
        case "urlset":
            urls: list[SitemapUrl] = []
            for entry in root:
                if _local_name(entry.tag) != "url":
                    continue
                loc = _child_text(entry, "loc")
                if not loc:
                    continue
                priority = _child_text(entry, "priority")
                urls.append(
                    SitemapUrl(
                        loc=loc,
                        lastmod=_child_text(entry, "lastmod"),
                        priority=float(priority) if priority else None,
                    )
                )
            return ParsedSitemap(urls=tuple(urls))
        case other:
            raise SitemapError(f"Unexpected sitemap root element <{other}>")


def filter_urls(
    urls: Sequence[str],
    exclude: Sequence[str] = (),
    include: Sequence[str] = (),
) -> Sequence[str]:
    """Drop URLs matching an exclude pattern; keep only include matches if any.

    Patterns are plain substrings. Order is preserved.
    """
    kept = [url for url in urls if not any(pattern in url for pattern in exclude)]
    if include:
        kept = [url for url in kept if any(pattern in url for pattern in include)]
    return tuple(kept)


@dataclass(kw_only=True)
class SitemapParser:
    """Collects page URLs from a sitemap, following nested sitemap indexes."""

    session: aiohttp.ClientSession = field(repr=False)
    max_depth: int = MAX_DEPTH
    max_subsitemaps: int = MAX_SUBSITEMAPS
    _visited: set[str] = field(default_factory=set, init=False)

    @classmethod
    @asynccontextmanager
    async def create(
        cls, *, timeout: float = REQUEST_TIMEOUT
    ) -> AsyncGenerator["SitemapParser", None]:
        """Create a parser with managed session lifecycle."""
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout),
            raise_for_status=True,
        ) as session:
            yield cls(session=session)

    async def parse(self, location: str, depth: int = 0) -> Sequence[SitemapUrl]:
        """Return page entries reachable from ``location``, deduplicated in order.

        Args:
            location: Sitemap URL or local file path
            depth: Current nesting level of sitemap indexes

        Raises:
            SitemapError: If the root sitemap cannot be read

        """
        if location in self._visited:
            log.debug("Sitemap %s already visited", location)
            return ()
        self._visited.add(location)

        parsed = parse_sitemap_xml(await self._read(location))
        entries: dict[str, SitemapUrl] = {}
        for entry in parsed.urls:
            entries.setdefault(entry.loc, entry)
        if not parsed.sitemaps:
            log.info("Found %d URL(s) in %s", len(entries), location)
            return tuple(entries.values())

        if depth >= self.max_depth:
            log.warning(
                "Not following %d sitemap(s) from %s: depth limit %d reached",
                len(parsed.sitemaps),
                location,
                self.max_depth,
            )
            return tuple(entries.values())

        children = parsed.sitemaps[: self.max_subsitemaps]
        if len(parsed.sitemaps) > len(children):
            log.warning(
                "Following only the first %d of %d sitemaps in %s",
                len(children),
                len(parsed.sitemaps),
                location,
            )

        results = await asyncio.gather(
            *(self.parse(child, depth + 1) for child in children),
            return_exceptions=True,
        )
        for child, result in zip(children, results, strict=True):
            if isinstance(result, BaseException):
                log.warning("Skipping sitemap %s: %s", child, result)
                continue
            for entry in result:
                entries.setdefault(entry.loc, entry)
        return tuple(entries.values())

    async def _read(self, location: str) -> str:
        if urlsplit(location).scheme not in {"http", "https"}:
            path = Path(location.removeprefix("file://"))
            try:
                return await asyncio.to_thread(path.read_text, encoding="utf-8")
            except OSError as exc:
                raise SitemapError(f"Cannot read sitemap {path}: {exc}") from exc

        try:
            async with self.session.get(location) as response:
                return await response.text()
        except aiohttp.ClientError as exc:
            raise SitemapError(f"Cannot fetch sitemap {location}: {exc}") from exc
        except TimeoutError as exc:
            raise SitemapError(f"Timed out fetching sitemap {location}") from exc


async def discover_urls(
    location: str,
    *,
    exclude: Sequence[str] = (),
    include: Sequence[str] = (),
) -> Sequence[str]:
    """Fetch a sitemap and return its filtered page URLs."""
    async with SitemapParser.create() as parser:
        entries = await parser.parse(location)
    urls = filter_urls([entry.loc for entry in entries], exclude, include)
    log.info(
        "Sitemap %s yielded %d URL(s), %d after filtering",
        location,
        len(entries),
        len(urls),
    )
    return urls
