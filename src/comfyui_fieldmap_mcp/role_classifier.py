"""
Prompt Role Classifier

Decides whether each text-encoder node feeds the positive or the negative
conditioning of a sampler by tracing graph links.

Rules, evaluated per encoder in this order (first match wins):
1. Two-role sink (KSampler, KSamplerAdvanced, *ImageToVideo*, *TextToVideo*)
   links the encoder on its `positive` or `negative` input.
2. BasicGuider links the encoder on `conditioning` -> positive.
3. One hop: a node that consumes the encoder is itself matched by 1 or 2.
   Deeper chains are not followed.
4. Node title contains "positive" / "negative" (case-insensitive).
5. Unresolved: offered for both roles.

Structurally traced encoders (1-3) always come before heuristic ones (4-5)
in a role's candidate list, so index 0 is a traced match whenever one exists.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .field_mapping import FieldCandidate
from .graph import Link, Literal, PlaceholderToken, WorkflowGraph, WorkflowNode
from .types import ClassificationDict

# Substrings (lower-case) that mark a class type as a text encoder
ENCODER_CLASS_MARKERS = ("textencode", "prompt")

# Input keys holding the prompt text, in preference order
TEXT_INPUT_KEYS = ("text", "prompt")

TWO_ROLE_SINKS = ("KSampler", "KSamplerAdvanced")
TWO_ROLE_SINK_MARKERS = ("ImageToVideo", "TextToVideo")
SINGLE_ROLE_SINKS = ("BasicGuider",)


class Role(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNRESOLVED = "unresolved"


class ClassificationSource(str, Enum):
    DIRECT_SINK = "direct_sink"
    SINGLE_ROLE_SINK = "single_role_sink"
    INDIRECT = "indirect"
    TITLE = "title"
    UNRESOLVED = "unresolved"


_STRUCTURAL_SOURCES = frozenset(
    {ClassificationSource.DIRECT_SINK, ClassificationSource.SINGLE_ROLE_SINK, ClassificationSource.INDIRECT}
)


@dataclass(frozen=True)
class Classification:
    """Role assigned to one encoder candidate and the rule that decided it."""

    candidate: FieldCandidate
    role: Role
    source: ClassificationSource

    @property
    def structural(self) -> bool:
        return self.source in _STRUCTURAL_SOURCES

    def to_dict(self) -> ClassificationDict:
        return {
            "node_id": self.candidate.node_id,
            "node_name": self.candidate.node_name,
            "class_type": self.candidate.class_type,
            "input_key": self.candidate.input_key,
            "role": self.role.value,
            "source": self.source.value,
        }


def is_two_role_sink(class_type: str) -> bool:
    if class_type in TWO_ROLE_SINKS:
        return True
    return any(marker.lower() in class_type.lower() for marker in TWO_ROLE_SINK_MARKERS)


def _encoder_input_key(node: WorkflowNode) -> Optional[str]:
    class_lower = node.class_type.lower()
    if not any(marker in class_lower for marker in ENCODER_CLASS_MARKERS):
        return None
    for key in TEXT_INPUT_KEYS:
        if node.has_input(key):
            return key
    return None


def find_encoder_candidates(graph: WorkflowGraph) -> List[FieldCandidate]:
    """Encoder nodes with a text/prompt input, in canonical node order."""
    candidates = []
    for node in graph:
        input_key = _encoder_input_key(node)
        if input_key is None:
            continue
        value = node.input(input_key)
        candidates.append(
            FieldCandidate(
                node_id=node.node_id,
                node_name=node.title,
                class_type=node.class_type,
                input_key=input_key,
                current_value=_display_value(value),
            )
        )
    return candidates


def _display_value(value):
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, PlaceholderToken):
        return value.token
    return None


def _links_to(node: WorkflowNode, input_key: str, target_id: str) -> bool:
    link = node.link_for(input_key)
    return link is not None and link.node_id == target_id


def trace_sink_role(graph: WorkflowGraph, node_id: str) -> Optional[Tuple[Role, ClassificationSource]]:
    """
    Apply the sink rules (1 and 2) to `node_id`.

    Every two-role sink is checked before any single-role sink, so a direct
    positive/negative link is never shadowed by a BasicGuider elsewhere.
    """
    for sink in graph:
        if not is_two_role_sink(sink.class_type):
            continue
        if _links_to(sink, "positive", node_id):
            return Role.POSITIVE, ClassificationSource.DIRECT_SINK
        if _links_to(sink, "negative", node_id):
            return Role.NEGATIVE, ClassificationSource.DIRECT_SINK

    for sink in graph:
        if sink.class_type in SINGLE_ROLE_SINKS and _links_to(sink, "conditioning", node_id):
            return Role.POSITIVE, ClassificationSource.SINGLE_ROLE_SINK

    return None


def trace_conditioning_role(graph: WorkflowGraph, node_id: str) -> Optional[Role]:
    """
    Structural role of `node_id` from rules 1-3, or None if not traceable.

    Links to nodes absent from the graph simply never match.
    """
    traced = _trace_structural(graph, node_id)
    return traced[0] if traced else None


def _trace_structural(graph: WorkflowGraph, node_id: str) -> Optional[Tuple[Role, ClassificationSource]]:
    direct = trace_sink_role(graph, node_id)
    if direct:
        return direct

    # One hop through an intermediate conditioning node (e.g. FluxGuidance)
    for intermediate in graph:
        if intermediate.node_id == node_id:
            continue
        consumes_candidate = any(link.node_id == node_id for link in _links_of(intermediate))
        if not consumes_candidate:
            continue
        via = trace_sink_role(graph, intermediate.node_id)
        if via:
            return via[0], ClassificationSource.INDIRECT

    return None


def _links_of(node: WorkflowNode):
    for _, value in node.inputs:
        if isinstance(value, Link):
            yield value


def _title_role(title: str) -> Optional[Role]:
    lowered = title.lower()
    if "positive" in lowered:
        return Role.POSITIVE
    if "negative" in lowered:
        return Role.NEGATIVE
    return None


def classify_encoders(graph: WorkflowGraph) -> List[Classification]:
    """Classify every encoder candidate in canonical node order."""
    results = []
    for candidate in find_encoder_candidates(graph):
        traced = _trace_structural(graph, candidate.node_id)
        if traced:
            role, source = traced
        else:
            role = _title_role(candidate.node_name)
            source = ClassificationSource.TITLE if role else ClassificationSource.UNRESOLVED
            role = role or Role.UNRESOLVED
        results.append(Classification(candidate=candidate, role=role, source=source))
    return results


def prompt_candidates(graph: WorkflowGraph) -> Dict[str, List[FieldCandidate]]:
    """
    Build candidate lists for positive_text and negative_text.

    Returns:
        {"positive_text": [...], "negative_text": [...]} with traced
        candidates first, then title matches and unresolved encoders.
    """
    traced: Dict[Role, List[FieldCandidate]] = {Role.POSITIVE: [], Role.NEGATIVE: []}
    heuristic: Dict[Role, List[FieldCandidate]] = {Role.POSITIVE: [], Role.NEGATIVE: []}

    for item in classify_encoders(graph):
        if item.role is Role.UNRESOLVED:
            heuristic[Role.POSITIVE].append(item.candidate)
            heuristic[Role.NEGATIVE].append(item.candidate)
        elif item.structural:
            traced[item.role].append(item.candidate)
        else:
            heuristic[item.role].append(item.candidate)

    return {
        "positive_text": traced[Role.POSITIVE] + heuristic[Role.POSITIVE],
        "negative_text": traced[Role.NEGATIVE] + heuristic[Role.NEGATIVE],
    }
