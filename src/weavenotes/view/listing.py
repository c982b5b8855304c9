"""Synthetic text-only listing built from cached tool records."""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag

from weavenotes.annotations.models import Tool
from weavenotes.page.document import HostPage, RegionRef
from weavenotes.page.markup import replace_inner_markup

LISTING_ID = "rc-text-only-container"
ITEM_CLASS = "rc-text-only-item"
TITLE_CLASS = "rc-text-only-title"
CONTENT_CLASS = "rc-text-only-content"
TEXT_CONTENT_CLASS = "html-text-editor-content"
TEXT_ONLY_BODY_CLASS = "rc-text-only-mode"


def _build_item(soup: BeautifulSoup, tool: Tool) -> Tag:
    item = soup.new_tag(
        "div",
        attrs={
            "class": [ITEM_CLASS],
            "data-tool-id": tool.id,
            "data-tool-type": tool.type,
            "data-suggestion-count": str(tool.suggestion_count),
        },
    )
    if tool.title:
        heading = soup.new_tag("h3", attrs={"class": [TITLE_CLASS]})
        heading.string = tool.title
        item.append(heading)

    content = soup.new_tag("div", attrs={"class": [CONTENT_CLASS, TEXT_CONTENT_CLASS]})
    replace_inner_markup(content, tool.content.html_span)
    item.append(content)
    return item


def build_listing(soup: BeautifulSoup, tools: list[Tool]) -> Tag:
    """One container holding an item per tool, in cache order."""

    container = soup.new_tag("div", attrs={"id": LISTING_ID})
    for tool in tools:
        container.append(_build_item(soup, tool))
    return container


def listing_region(page: HostPage, tool: Tool) -> RegionRef | None:
    """The listing item for ``tool`` as a region reference, or None."""

    container = page.find_by_id(LISTING_ID)
    if container is None:
        return None
    for item in container.select(f"div.{ITEM_CLASS}"):
        if item.get("data-tool-id") == tool.id:
            return RegionRef(
                element=item,
                id=tool.id,
                type=tool.type,
                text_element=item.select_one(f"div.{CONTENT_CLASS}"),
            )
    return None


def show_listing(page: HostPage, tools: list[Tool]) -> Tag:
    """Tear the page body down and replace it with the listing."""

    listing = build_listing(page.soup, tools)
    page.replace_body_contents(listing)
    classes = list(page.body.get("class") or [])
    if TEXT_ONLY_BODY_CLASS not in classes:
        page.body["class"] = [*classes, TEXT_ONLY_BODY_CLASS]
    return listing
