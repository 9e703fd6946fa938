"""
Field Mapping Builder

Combines the key registry, placeholder binding and prompt role tracing into
one WorkflowMappingState: per field key, an ordered candidate list with a
preferred default.

All states are immutable. Selecting a candidate returns a new state.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .graph import PlaceholderToken, WorkflowGraph
from .template_keys import (
    RequiredField,
    WorkflowCategory,
    is_role_ambiguous,
    json_input_key_for,
    optional_keys,
    placeholder_names_for,
    required_field,
    required_keys,
)
from .types import CandidateDict, FieldMappingDict, MappingStateDict

UNSELECTED = -1


@dataclass(frozen=True)
class FieldCandidate:
    """One (node, input) location that could be bound to a field."""

    node_id: str
    node_name: str
    class_type: str
    input_key: str
    current_value: Any = None

    def to_dict(self) -> CandidateDict:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "class_type": self.class_type,
            "input_key": self.input_key,
            "current_value": self.current_value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldCandidate":
        return cls(
            node_id=str(data["node_id"]),
            node_name=data.get("node_name", ""),
            class_type=data.get("class_type", ""),
            input_key=data["input_key"],
            current_value=data.get("current_value"),
        )


@dataclass(frozen=True)
class FieldMappingState:
    """Mapping state for a single field key."""

    field: RequiredField
    candidates: Tuple[FieldCandidate, ...] = ()
    selected_candidate_index: int = UNSELECTED

    def __post_init__(self):
        object.__setattr__(self, "candidates", tuple(self.candidates))
        index = self.selected_candidate_index
        if index != UNSELECTED and not 0 <= index < len(self.candidates):
            raise ValueError(
                f"Candidate index {index} out of range for '{self.field.key}' "
                f"({len(self.candidates)} candidates)"
            )

    @property
    def key(self) -> str:
        return self.field.key

    @property
    def is_required(self) -> bool:
        return self.field.is_required

    @property
    def selected_candidate(self) -> Optional[FieldCandidate]:
        if self.selected_candidate_index == UNSELECTED:
            return None
        return self.candidates[self.selected_candidate_index]

    @property
    def is_mapped(self) -> bool:
        return self.selected_candidate is not None

    @property
    def has_multiple_candidates(self) -> bool:
        return len(self.candidates) > 1

    @property
    def needs_remapping(self) -> bool:
        """Candidates exist but the selection was cleared (node taken by another field)."""
        return bool(self.candidates) and self.selected_candidate_index == UNSELECTED

    def to_dict(self) -> FieldMappingDict:
        return {
            "key": self.field.key,
            "display_name": self.field.display_name,
            "description": self.field.description,
            "is_required": self.field.is_required,
            "selected_candidate_index": self.selected_candidate_index,
            "candidates": [c.to_dict() for c in self.candidates],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldMappingState":
        field = RequiredField(
            key=data["key"],
            display_name=data.get("display_name", data["key"]),
            description=data.get("description", ""),
            is_required=bool(data.get("is_required", True)),
        )
        return cls(
            field=field,
            candidates=tuple(FieldCandidate.from_dict(c) for c in data.get("candidates", [])),
            selected_candidate_index=int(data.get("selected_candidate_index", UNSELECTED)),
        )


@dataclass(frozen=True)
class WorkflowMappingState:
    """Complete mapping state for one workflow: one entry per applicable key."""

    category: WorkflowCategory
    field_mappings: Tuple[FieldMappingState, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "field_mappings", tuple(self.field_mappings))
        seen = set()
        for mapping in self.field_mappings:
            if mapping.key in seen:
                raise ValueError(f"Duplicate field key '{mapping.key}' in mapping state")
            seen.add(mapping.key)

    @property
    def keys(self) -> List[str]:
        return [m.key for m in self.field_mappings]

    @property
    def all_fields_mapped(self) -> bool:
        return all(m.is_mapped for m in self.field_mappings)

    @property
    def unmapped_fields(self) -> List[RequiredField]:
        return [m.field for m in self.field_mappings if not m.is_mapped]

    @property
    def missing_required_fields(self) -> List[RequiredField]:
        return [m.field for m in self.field_mappings if m.is_required and not m.is_mapped]

    @property
    def is_complete(self) -> bool:
        """True when every required field has a selected candidate."""
        return not self.missing_required_fields

    def get(self, key: str) -> Optional[FieldMappingState]:
        for mapping in self.field_mappings:
            if mapping.key == key:
                return mapping
        return None

    def select_candidate(self, key: str, index: int) -> "WorkflowMappingState":
        """
        Select candidate `index` for `key` and return the new state.

        A node input can back only one field: any other field that currently
        has the same (node_id, input_key) selected is cleared (index -1).

        Raises:
            KeyError: If `key` is not part of this mapping.
            ValueError: If `index` is out of range.
        """
        target = self.get(key)
        if target is None:
            raise KeyError(key)

        updated_target = replace(target, selected_candidate_index=index)
        selected = updated_target.selected_candidate
        selected_site = (selected.node_id, selected.input_key) if selected else None

        updated = []
        for mapping in self.field_mappings:
            if mapping.key == key:
                updated.append(updated_target)
            elif selected_site is not None and _site(mapping.selected_candidate) == selected_site:
                updated.append(replace(mapping, selected_candidate_index=UNSELECTED))
            else:
                updated.append(mapping)
        return replace(self, field_mappings=tuple(updated))

    def final_mappings(self) -> Dict[str, Tuple[str, str]]:
        """Flatten to {key: (node_id, input_key)} for every mapped field."""
        result = {}
        for mapping in self.field_mappings:
            candidate = mapping.selected_candidate
            if candidate is not None:
                result[mapping.key] = (candidate.node_id, candidate.input_key)
        return result

    def to_dict(self) -> MappingStateDict:
        return {
            "category": self.category.value,
            "is_complete": self.is_complete,
            "field_mappings": [m.to_dict() for m in self.field_mappings],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowMappingState":
        """
        Rebuild a state handed back by an editor.

        Field keys and their required flags are checked against the registry
        for the category; the editor's own is_required values are ignored.

        Raises:
            ValueError: On an unknown category, a bad index, duplicate keys,
                a key outside the category, or a missing required key.
        """
        category = WorkflowCategory.parse(data["category"])
        required = required_keys(category)
        allowed = set(required) | set(optional_keys(category))
        if "clip_name" in allowed:
            allowed.update(("clip_name1", "clip_name2"))

        mappings = []
        for entry in data.get("field_mappings", []):
            mapping = FieldMappingState.from_dict(entry)
            if mapping.key not in allowed:
                raise ValueError(f"Field '{mapping.key}' is not a field of category {category.value}")
            mappings.append(replace(mapping, field=required_field(mapping.key, is_required=mapping.key in required)))

        present = {m.key for m in mappings}
        absent = [key for key in required if key not in present]
        if absent:
            raise ValueError(f"Mapping is missing required field(s): {', '.join(absent)}")
        return cls(category=category, field_mappings=tuple(mappings))


# =============================================================================
# Candidate discovery
# =============================================================================


def find_candidates_for_field(
    key: str,
    graph: WorkflowGraph,
    prompt_candidates: Optional[Mapping[str, Sequence[FieldCandidate]]] = None,
) -> List[FieldCandidate]:
    """
    Find the binding sites for one field key.

    Role-ambiguous keys take their list from `prompt_candidates` (traced by
    the role classifier). Any other key binds an input named
    json_input_key_for(key) whose value is a placeholder token for exactly
    this key, so e.g. {{highnoise_unet_name}} never lands on lownoise_unet_name.
    """
    if is_role_ambiguous(key):
        return list((prompt_candidates or {}).get(key, ()))

    input_key = json_input_key_for(key)
    token_names = placeholder_names_for(key)

    candidates = []
    for node in graph:
        value = node.input(input_key)
        if isinstance(value, PlaceholderToken) and value.name in token_names:
            candidates.append(
                FieldCandidate(
                    node_id=node.node_id,
                    node_name=node.title,
                    class_type=node.class_type,
                    input_key=input_key,
                    current_value=value.token,
                )
            )
    return candidates


def create_field_mapping_state(graph: WorkflowGraph, category: WorkflowCategory) -> WorkflowMappingState:
    """
    Build the mapping state for `graph` under `category`.

    Required keys come first, then optional keys, each in registry order. A
    field with candidates selects index 0, otherwise -1.
    """
    from .role_classifier import prompt_candidates as trace_prompt_candidates

    required = required_keys(category, graph)
    keys = required + optional_keys(category, graph)

    prompts = {}
    if any(is_role_ambiguous(k) for k in keys):
        prompts = trace_prompt_candidates(graph)

    mappings = []
    for key in keys:
        candidates = find_candidates_for_field(key, graph, prompts)
        mappings.append(
            FieldMappingState(
                field=required_field(key, is_required=key in required),
                candidates=tuple(candidates),
                selected_candidate_index=0 if candidates else UNSELECTED,
            )
        )
    return WorkflowMappingState(category=category, field_mappings=tuple(mappings))


def missing_required_fields(state: WorkflowMappingState) -> List[RequiredField]:
    """Required fields with no selected candidate, in mapping order."""
    return state.missing_required_fields


def _site(candidate: Optional[FieldCandidate]) -> Optional[Tuple[str, str]]:
    return (candidate.node_id, candidate.input_key) if candidate else None
