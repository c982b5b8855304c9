"""Host page wrapper and default content-region discovery."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import re

from bs4 import BeautifulSoup, Tag
from charset_normalizer import from_bytes

from weavenotes.annotations.models import UNKNOWN_ID
from weavenotes.page.markup import TEXT_CONTENT_SELECTOR

LOGGER = logging.getLogger(__name__)

TOOL_SELECTOR = ".tool-text, .tool-simpletext"
ENHANCED_ATTR = "data-rc-tool-enhanced"
SUGGESTION_COUNT_ATTR = "data-rc-suggestion-count"

_VIEW_URL_RE = re.compile(r"/view/(\d+)/(\d+)")


@dataclass(slots=True)
class RegionRef:
    """One discovered content region on the host page."""

    element: Tag
    id: str
    type: str
    text_element: Tag | None = None

    @property
    def enhanced(self) -> bool:
        return self.element.has_attr(ENHANCED_ATTR)


def _decode_page(raw: bytes) -> str:
    best = from_bytes(raw).best()
    if best and best.encoding:
        return raw.decode(best.encoding)
    for fallback in ("utf-8", "cp1252"):
        try:
            return raw.decode(fallback)
        except UnicodeDecodeError:
            continue
    raise ValueError("Could not detect page encoding")


class HostPage:
    """Mutable in-memory rendering of a foreign exposition page."""

    def __init__(self, markup: str, *, url: str | None = None) -> None:
        self._soup = BeautifulSoup(markup, "lxml")
        self._url = url or self._canonical_url() or ""

    @classmethod
    def from_file(cls, path: str | Path, *, url: str | None = None) -> "HostPage":
        raw = Path(path).read_bytes()
        return cls(_decode_page(raw), url=url)

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    @property
    def url(self) -> str:
        return self._url

    @property
    def body(self) -> Tag:
        body = self._soup.body
        if body is None:
            body = self._soup.new_tag("body")
            html = self._soup.html or self._soup
            html.append(body)
        return body

    @property
    def title(self) -> str:
        if self._soup.title is None:
            return ""
        return self._soup.title.get_text(strip=True)

    @property
    def exposition_id(self) -> str:
        return self._resolve_id("data-research", group=1)

    @property
    def weave_id(self) -> str:
        return self._resolve_id("data-weave", group=2)

    def serialize(self) -> str:
        return str(self._soup)

    def load_markup(self, markup: str) -> None:
        """Replace the whole document, keeping the page URL."""

        self._soup = BeautifulSoup(markup, "lxml")

    def replace_body_contents(self, *nodes: Tag) -> None:
        body = self.body
        body.clear()
        for node in nodes:
            body.append(node)

    def find_by_id(self, element_id: str) -> Tag | None:
        return self._soup.find(id=element_id)

    def _resolve_id(self, attribute: str, *, group: int) -> str:
        body = self._soup.body
        if body is not None:
            value = body.get(attribute)
            if isinstance(value, str) and value.strip():
                return value.strip()
        match = _VIEW_URL_RE.search(self._url)
        if match:
            return match.group(group)
        return UNKNOWN_ID

    def _canonical_url(self) -> str | None:
        link = self._soup.find("link", rel="canonical")
        if link is not None and link.get("href"):
            return str(link["href"])
        meta = self._soup.find("meta", attrs={"property": "og:url"})
        if meta is not None and meta.get("content"):
            return str(meta["content"])
        return None


def discover_regions(page: HostPage) -> list[RegionRef]:
    """Return every text tool region on the page in document order."""

    regions: list[RegionRef] = []
    seen: set[int] = set()
    for element in page.soup.select(TOOL_SELECTOR):
        if "tool-content" in (element.get("class") or []):
            continue
        if id(element) in seen:
            continue
        seen.add(id(element))
        regions.append(
            RegionRef(
                element=element,
                id=str(element.get("data-id") or UNKNOWN_ID),
                type=str(element.get("data-tool") or UNKNOWN_ID),
                text_element=element.select_one(TEXT_CONTENT_SELECTOR),
            )
        )

    LOGGER.debug("Discovered %d text tool regions", len(regions))
    return regions
