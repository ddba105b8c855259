"""Hashtag, mention and wiki-link extraction for view filters and backlinks."""

import html
import re
from dataclasses import dataclass, field

from outline_engine.models.node import Node

# #word / @word at start of text or after whitespace
HASHTAG_PATTERN = re.compile(r"(?:^|(?<=\s))#([a-zA-Z][a-zA-Z0-9_-]*)")
MENTION_PATTERN = re.compile(r"(?:^|(?<=\s))@([a-zA-Z][a-zA-Z0-9_-]*)")
# <span data-wiki-link data-node-id="..."> from the editor, or plain [[id]]
WIKI_LINK_PATTERN = re.compile(r'data-node-id="([^"]+)"|\[\[([^\]]+)\]\]')

_TAG_RE = re.compile(r"<[^>]*>")


def strip_html(content: str) -> str:
    """Drop markup tags and decode entities."""
    return html.unescape(_TAG_RE.sub("", content)).replace("\xa0", " ")


def extract_hashtags(text: str) -> list[str]:
    return HASHTAG_PATTERN.findall(text)


def extract_mentions(text: str) -> list[str]:
    return MENTION_PATTERN.findall(text)


def extract_wiki_links(content: str) -> list[str]:
    """Ids of the nodes a piece of (HTML) content links to, in order."""
    return [span or plain.strip() for span, plain in WIKI_LINK_PATTERN.findall(content)]


def node_matches_filter(node: Node, filter_query: str) -> bool:
    """Check whether a node's plain-text content carries ``#tag`` or ``@mention``."""
    plain = strip_html(node.content)
    if filter_query.startswith("#"):
        return filter_query[1:] in extract_hashtags(plain)
    if filter_query.startswith("@"):
        return filter_query[1:] in extract_mentions(plain)
    return False


@dataclass
class TagUsage:
    """How often a hashtag occurs and on which nodes."""

    count: int = 0
    node_ids: list[str] = field(default_factory=list)


def collect_tags(nodes: "list[Node] | tuple[Node, ...]") -> dict[str, TagUsage]:
    """Map each hashtag to its occurrence count and the ids of nodes using it."""
    tag_map: dict[str, TagUsage] = {}
    for node in nodes:
        for tag in extract_hashtags(strip_html(node.content)):
            usage = tag_map.setdefault(tag, TagUsage())
            usage.count += 1
            if node.id not in usage.node_ids:
                usage.node_ids.append(node.id)
    return tag_map
