"""Read and write OPML 2.0 outlines."""

import re
import uuid
from urllib.parse import unquote

from lxml import etree

from outline_engine.core.importer.json_reader import DYNALIST_COLORS
from outline_engine.core.search.tags import strip_html
from outline_engine.models.node import Node

# Dynalist inline dates: !(2024-09-01) or !(2024-09-01 | 1w)
DATE_PATTERN = re.compile(r"!\((\d{4}-\d{2}-\d{2})(?:\s*\|\s*([^)]+))?\)\s*")
RECURRENCE_PATTERN = re.compile(r"^(\d+)([dwmy])$")
OBSIDIAN_LINK_PATTERN = re.compile(r"\[@ob\]\(obsidian://open\?vault=[^&]+&file=([^)]+)\)")
HIGHLIGHT_PATTERN = re.compile(r"==([^=]+)==")

FREQUENCIES = {"d": "DAILY", "w": "WEEKLY", "m": "MONTHLY", "y": "YEARLY"}


def convert_recurrence(text: str) -> str | None:
    """Turn a Dynalist repeat (``1d``, ``2w``, ``~1y``) into an RRULE."""
    match = RECURRENCE_PATTERN.match(text.strip().lstrip("~"))
    if match is None:
        return None
    interval, unit = int(match.group(1)), match.group(2)
    rule = f"FREQ={FREQUENCIES[unit]}"
    return rule if interval == 1 else f"{rule};INTERVAL={interval}"


def convert_syntax(text: str) -> str:
    """Rewrite Obsidian links as ``[[name]]`` and ``==x==`` as ``<mark>``."""
    text = OBSIDIAN_LINK_PATTERN.sub(
        lambda m: f"[[{unquote(m.group(1)).rsplit('/', 1)[-1]}]]", text
    )
    return HIGHLIGHT_PATTERN.sub(r"<mark>\1</mark>", text)


def _split_date(text: str) -> tuple[str, str | None, str | None]:
    date = recurrence = None
    match = DATE_PATTERN.search(text)
    if match is not None:
        date = match.group(1)
        if match.group(2):
            recurrence = convert_recurrence(match.group(2))
    return convert_syntax(DATE_PATTERN.sub("", text)).strip(), date, recurrence


def _outline_to_node(element: etree._Element, parent_id: str | None, position: int) -> Node:
    content, date, recurrence = _split_date(element.get("text", ""))
    note = element.get("_note")
    is_checked = element.get("complete") == "true"
    heading = element.get("heading", "")
    heading_level = int(heading) if heading.isdigit() and 1 <= int(heading) <= 6 else None
    color_label = element.get("colorLabel", "")

    if heading_level is not None:
        node_type = "heading"
    elif is_checked:
        node_type = "checkbox"
    else:
        node_type = "bullet"

    return Node(
        id=str(uuid.uuid4()),
        parent_id=parent_id,
        position=position,
        content=content,
        node_type=node_type,
        is_checked=is_checked,
        note=convert_syntax(note) if note else None,
        heading_level=heading_level,
        date=date,
        date_recurrence=recurrence,
        color=DYNALIST_COLORS.get(int(color_label)) if color_label.isdigit() else None,
    )


def parse_opml(text: str | bytes) -> tuple[str, list[Node]]:
    """Parse an OPML document into its title and nodes (pre-order).

    Raises:
        ValueError: If the text is not well-formed XML or has no ``<body>``.
    """
    parser = etree.XMLParser(remove_blank_text=True, load_dtd=False, resolve_entities=False)
    raw = text.encode("utf-8") if isinstance(text, str) else text
    try:
        root = etree.fromstring(raw, parser)
    except etree.XMLSyntaxError as e:
        msg = f"Invalid OPML: {e}"
        raise ValueError(msg) from e

    body = root.find("body")
    if body is None:
        msg = "OPML document has no <body>"
        raise ValueError(msg)
    title = (root.findtext("head/title") or "").strip() or "Untitled"

    nodes: list[Node] = []

    def walk(parent: etree._Element, parent_id: str | None) -> None:
        for position, element in enumerate(parent.findall("outline")):
            node = _outline_to_node(element, parent_id, position)
            nodes.append(node)
            walk(element, node.id)

    walk(body, None)
    return title, nodes


def dump_opml(nodes: "list[Node] | tuple[Node, ...]", title: str) -> str:
    """Serialize nodes as an OPML 2.0 document.

    Content is written as plain text; notes go into ``_note`` and checked
    items carry ``complete="true"``.
    """
    children: dict[str | None, list[Node]] = {}
    for node in nodes:
        children.setdefault(node.parent_id, []).append(node)

    opml = etree.Element("opml", version="2.0")
    head = etree.SubElement(opml, "head")
    etree.SubElement(head, "title").text = title
    body = etree.SubElement(opml, "body")

    def write(parent: etree._Element, parent_id: str | None) -> None:
        for node in sorted(children.get(parent_id, []), key=lambda n: n.position):
            element = etree.SubElement(parent, "outline", text=strip_html(node.content).strip())
            if node.note:
                element.set("_note", node.note)
            if node.is_checked:
                element.set("complete", "true")
            write(element, node.id)

    write(body, None)
    return etree.tostring(
        opml, pretty_print=True, xml_declaration=True, encoding="UTF-8"
    ).decode("utf-8")
