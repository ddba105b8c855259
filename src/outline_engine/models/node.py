"""Domain models for the outline engine."""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Literal

NodeType = Literal["bullet", "checkbox", "heading"]

NODE_TYPES: tuple[str, ...] = ("bullet", "checkbox", "heading")


@dataclass(frozen=True)
class Node:
    """A single outline item."""

    id: str
    parent_id: str | None
    position: int
    content: str = ""
    node_type: NodeType = "bullet"
    is_checked: bool = False
    collapsed: bool = False
    note: str | None = None
    heading_level: int | None = None
    date: str | None = None
    date_recurrence: str | None = None
    tags: tuple[str, ...] = ()
    color: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire/backup representation."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        """Build a node from a wire dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["tags"] = tuple(kwargs.get("tags") or ())
        kwargs["position"] = int(kwargs.get("position", 0))
        kwargs["is_checked"] = bool(kwargs.get("is_checked", False))
        kwargs["collapsed"] = bool(kwargs.get("collapsed", False))
        return cls(**kwargs)


@dataclass(frozen=True)
class NodeChanges:
    """Partial field update for a node. ``None`` means "leave unchanged".

    An empty string for ``note``, ``date``, ``date_recurrence`` or ``color``
    clears the field; so does ``heading_level=0``.
    """

    content: str | None = None
    note: str | None = None
    node_type: NodeType | None = None
    heading_level: int | None = None
    is_checked: bool | None = None
    collapsed: bool | None = None
    date: str | None = None
    date_recurrence: str | None = None
    tags: tuple[str, ...] | None = None
    color: str | None = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            out[f.name] = list(value) if f.name == "tags" else value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeChanges":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if kwargs.get("tags") is not None:
            kwargs["tags"] = tuple(kwargs["tags"])
        return cls(**kwargs)

    def is_empty(self) -> bool:
        return not self.as_dict()

    def apply_to(self, node: Node, *, updated_at: str = "") -> Node:
        """Return ``node`` with these changes applied."""
        updates: dict[str, Any] = {}
        for name, value in self.as_dict().items():
            if name in ("note", "date", "date_recurrence", "color", "heading_level"):
                updates[name] = value or None
            elif name == "tags":
                updates[name] = tuple(value)
            else:
                updates[name] = value
        if updated_at:
            updates["updated_at"] = updated_at
        return replace(node, **updates)

    @classmethod
    def restoring(cls, node: Node, names: "tuple[str, ...] | list[str]") -> "NodeChanges":
        """Changes that put the named fields of ``node`` back, clearing empty ones."""
        kwargs: dict[str, Any] = {}
        for name in names:
            value = getattr(node, name)
            if value is None and name in ("note", "date", "date_recurrence", "color"):
                value = ""
            elif value is None and name == "heading_level":
                value = 0
            kwargs[name] = value
        return cls(**kwargs)


# Fields that ``create_node_with_id`` does not set and must be restored separately.
RESTORABLE_FIELDS: tuple[str, ...] = (
    "is_checked",
    "collapsed",
    "note",
    "heading_level",
    "date",
    "date_recurrence",
    "tags",
    "color",
)


def restore_changes(node: Node) -> NodeChanges:
    """Changes needed to bring a freshly created node up to ``node``'s fields."""
    defaults = Node(id="", parent_id=None, position=0)
    names = [n for n in RESTORABLE_FIELDS if getattr(node, n) != getattr(defaults, n)]
    return NodeChanges.restoring(node, names)


@dataclass(frozen=True)
class DocumentState:
    """The authoritative node list returned by every backend mutation."""

    nodes: tuple[Node, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocumentState":
        return cls(nodes=tuple(Node.from_dict(n) for n in data.get("nodes", [])))

    def to_dict(self) -> dict[str, Any]:
        return {"nodes": [n.to_dict() for n in self.nodes]}


@dataclass(frozen=True)
class CreateResult:
    """Id of a newly created node and the state after creation."""

    id: str
    state: DocumentState


@dataclass(frozen=True)
class Document:
    """An outline document known to a backend."""

    id: str
    title: str
    node_count: int = 0


@dataclass(frozen=True)
class TreeNode:
    """A visible node inside a materialized tree."""

    node: Node
    depth: int
    has_children: bool
    children: tuple["TreeNode", ...] = ()


@dataclass(frozen=True)
class FlatItem:
    """A visible node in the flattened, navigation-ordered list."""

    node: Node
    depth: int
    has_children: bool


@dataclass(frozen=True)
class Breadcrumb:
    """A single ancestor in a breadcrumb trail."""

    node_id: str
    content: str
    depth: int


@dataclass(frozen=True)
class SearchResult:
    """A search hit with context."""

    node: Node
    document_id: str
    document_title: str
    snippet: str
    score: float = 0.0


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging two nodes."""

    target_id: str
    cursor_pos: int


@dataclass(frozen=True)
class RebuildStats:
    """How the child index was last rebuilt."""

    strategy: Literal["full", "surgical", "unchanged"]
    affected_parents: frozenset[str | None] = field(default_factory=frozenset)
    patched_nodes: int = 0
