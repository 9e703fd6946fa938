"""
Workflow Graph Model

Parses ComfyUI API-format workflow JSON into a typed, immutable node graph.

Both document shapes are accepted and normalized once, here:
- flat:    {"3": {"class_type": "KSampler", "inputs": {...}}, ...}
- wrapped: {"name": "...", "description": "...", "nodes": {"3": {...}, ...}}

Every node input becomes one of Literal, PlaceholderToken or Link so that
downstream modules never look at raw JSON again.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from core.errors import WorkflowParseError

# Entire value must be the token; "a {{x}} b" is a plain literal.
PLACEHOLDER_PATTERN = re.compile(r"^\{\{([A-Za-z0-9_]+)\}\}$")


@dataclass(frozen=True)
class Literal:
    """A plain input value (string, number, bool, null or nested JSON)."""

    value: Any


@dataclass(frozen=True)
class PlaceholderToken:
    """A {{name}} template token marking a user-configurable input."""

    name: str

    @property
    def token(self) -> str:
        return f"{{{{{self.name}}}}}"


@dataclass(frozen=True)
class Link:
    """Connection to output `slot` of another node. The node may not exist."""

    node_id: str
    slot: int


InputValue = Union[Literal, PlaceholderToken, Link]


@dataclass(frozen=True)
class WorkflowEdge:
    """Directed edge from a node output to a named input of another node."""

    source_node_id: str
    source_slot: int
    target_node_id: str
    target_input: str


@dataclass(frozen=True)
class WorkflowNode:
    """A single node. Inputs keep the order of the source document."""

    node_id: str
    class_type: str
    title: str
    inputs: Tuple[Tuple[str, InputValue], ...] = ()

    def input(self, key: str) -> Optional[InputValue]:
        for name, value in self.inputs:
            if name == key:
                return value
        return None

    def has_input(self, key: str) -> bool:
        return any(name == key for name, _ in self.inputs)

    def link_for(self, key: str) -> Optional[Link]:
        """Return the Link on input `key`, or None if it is not a link."""
        value = self.input(key)
        return value if isinstance(value, Link) else None

    @property
    def input_dict(self) -> Dict[str, InputValue]:
        return dict(self.inputs)


def node_sort_key(node_id: str) -> Tuple[int, int, str]:
    """Canonical node order: numeric ids numerically, then the rest by name."""
    if node_id.isascii() and node_id.isdigit():
        return (0, int(node_id), node_id)
    return (1, 0, node_id)


@dataclass(frozen=True)
class WorkflowGraph:
    """Parsed workflow. Nodes are held in canonical id order."""

    nodes: Tuple[WorkflowNode, ...]
    name: str = ""
    description: str = ""
    wrapped: bool = False
    _index: Dict[str, WorkflowNode] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", {node.node_id: node for node in self.nodes})

    def __iter__(self) -> Iterator[WorkflowNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def get(self, node_id: str) -> Optional[WorkflowNode]:
        return self._index.get(node_id)

    def class_types(self) -> List[str]:
        """Distinct class types, sorted."""
        return sorted({node.class_type for node in self.nodes if node.class_type})

    def has_class_type(self, class_type: str) -> bool:
        return any(node.class_type == class_type for node in self.nodes)

    def edges(self) -> List[WorkflowEdge]:
        """All links in the graph, including those to nodes that do not exist."""
        result = []
        for node in self.nodes:
            for input_name, value in node.inputs:
                if isinstance(value, Link):
                    result.append(WorkflowEdge(value.node_id, value.slot, node.node_id, input_name))
        return result

    def links_to(self, node_id: str) -> List[WorkflowEdge]:
        """Edges whose source is `node_id` (who consumes this node's outputs)."""
        return [edge for edge in self.edges() if edge.source_node_id == node_id]


# =============================================================================
# Parsing
# =============================================================================


def parse_input_value(value: Any) -> InputValue:
    """Interpret one raw JSON input value."""
    if (
        isinstance(value, list)
        and len(value) == 2
        and isinstance(value[0], str)
        and isinstance(value[1], int)
        and not isinstance(value[1], bool)
    ):
        return Link(node_id=value[0], slot=value[1])
    if isinstance(value, str):
        match = PLACEHOLDER_PATTERN.match(value)
        if match:
            return PlaceholderToken(match.group(1))
    return Literal(value)


def extract_nodes_object(document: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Return (nodes mapping, was_wrapped) for either document shape."""
    nodes = document.get("nodes")
    if isinstance(nodes, dict):
        return nodes, True
    return document, False


def _parse_node(node_id: str, raw: Any) -> WorkflowNode:
    if not isinstance(raw, dict):
        raise WorkflowParseError(reason=f"Node {node_id} is not an object")

    class_type = raw.get("class_type", "")
    if not isinstance(class_type, str):
        raise WorkflowParseError(reason=f"Node {node_id} has a non-string class_type")

    raw_inputs = raw.get("inputs", {})
    if raw_inputs is None:
        raw_inputs = {}
    if not isinstance(raw_inputs, dict):
        raise WorkflowParseError(reason=f"Node {node_id} inputs is not an object")

    meta = raw.get("_meta")
    title = ""
    if isinstance(meta, dict) and isinstance(meta.get("title"), str):
        title = meta["title"]

    inputs = tuple((str(key), parse_input_value(value)) for key, value in raw_inputs.items())
    return WorkflowNode(node_id=node_id, class_type=class_type, title=title or class_type, inputs=inputs)


def parse_document(document: Any) -> WorkflowGraph:
    """Build a graph from an already-decoded JSON document."""
    if not isinstance(document, dict):
        raise WorkflowParseError(reason=f"Top-level JSON value must be an object, got {type(document).__name__}")

    nodes_json, wrapped = extract_nodes_object(document)

    nodes = []
    for node_id, raw in nodes_json.items():
        node_id = str(node_id)
        # Flat documents may carry template metadata such as _meta
        if node_id.startswith("_"):
            continue
        nodes.append(_parse_node(node_id, raw))

    nodes.sort(key=lambda node: node_sort_key(node.node_id))

    name = document.get("name", "") if wrapped else ""
    description = document.get("description", "") if wrapped else ""
    return WorkflowGraph(
        nodes=tuple(nodes),
        name=name if isinstance(name, str) else "",
        description=description if isinstance(description, str) else "",
        wrapped=wrapped,
    )


def parse_workflow(document_text: str) -> WorkflowGraph:
    """
    Parse workflow JSON text into a WorkflowGraph.

    Args:
        document_text: Workflow JSON in flat or "nodes"-wrapped API format.

    Returns:
        The parsed, immutable graph.

    Raises:
        WorkflowParseError: If the text is not JSON or not a node mapping.
    """
    try:
        document = json.loads(document_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise WorkflowParseError(reason=str(e)) from e
    return parse_document(document)
