"""
Workflow Library Preparation

Checks and transforms needed before an imported workflow is handed to the
library store: name/description rules, duplicate names, filenames, and
writing the confirmed mapping back into the document as placeholders.

Storage itself lives outside this package.
"""

import json
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from core.errors import DuplicateNameError, WorkflowNameError, WorkflowParseError

from .graph import extract_nodes_object, parse_document
from .mcp_utils import log_structured
from .template_keys import CATEGORY_FILENAME_PREFIXES, WorkflowCategory, placeholder_for_key

MAX_NAME_LENGTH = 40
MAX_DESCRIPTION_LENGTH = 120

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9 _\-\[\]()]+$")


def validate_workflow_name(name: str) -> str:
    """
    Validate a workflow name and return it stripped.

    Raises:
        WorkflowNameError: Blank, too long, or containing other characters.
    """
    stripped = (name or "").strip()
    if not stripped:
        raise WorkflowNameError(value=name or "", reason="Workflow name is required")
    if len(stripped) > MAX_NAME_LENGTH:
        raise WorkflowNameError(value=name, reason=f"Workflow name must be at most {MAX_NAME_LENGTH} characters")
    if not NAME_PATTERN.match(stripped):
        raise WorkflowNameError(
            value=name,
            reason="Workflow name may only contain letters, digits, spaces and _ - [ ] ( )",
        )
    return stripped


def validate_workflow_description(text: str) -> str:
    """Validate a description (may be empty) and return it stripped."""
    stripped = (text or "").strip()
    if len(stripped) > MAX_DESCRIPTION_LENGTH:
        raise WorkflowNameError(
            value=text,
            reason=f"Workflow description must be at most {MAX_DESCRIPTION_LENGTH} characters",
        )
    return stripped


def check_duplicate_name(name: str, existing_names: Iterable[str]) -> None:
    """Raise DuplicateNameError if `name` matches an existing one, ignoring case."""
    lowered = name.strip().lower()
    if any(existing.strip().lower() == lowered for existing in existing_names):
        raise DuplicateNameError(name=name)


def sanitize_name(name: str) -> str:
    sanitized = re.sub(r"[^a-z0-9]", "_", name.lower())
    sanitized = re.sub(r"_+", "_", sanitized)
    return sanitized.strip("_")


def generate_filename(category: WorkflowCategory, name: str) -> str:
    """e.g. generate_filename(TTI_UNET, "My Flux (v2)") -> "tti_unet_my_flux_v2.json"."""
    return f"{CATEGORY_FILENAME_PREFIXES[category]}{sanitize_name(name)}.json"


def parse_category_from_filename(filename: str) -> Optional[WorkflowCategory]:
    lowered = filename.lower()
    for category, prefix in CATEGORY_FILENAME_PREFIXES.items():
        if lowered.startswith(prefix):
            return category
    return None


def apply_field_mappings(
    document_text: str,
    final_mappings: Mapping[str, Tuple[str, str]],
    name: str,
    description: str = "",
) -> Dict[str, Any]:
    """
    Write confirmed mappings into the workflow as placeholder tokens.

    Each mapped (node_id, input_key) gets "{{placeholder_for_key(key)}}".
    Mappings that point at a missing node or input are skipped.

    Returns:
        {"name", "description", "nodes", "fieldMappings"} ready to store.

    Raises:
        WorkflowParseError: If the document is not a workflow.
    """
    try:
        document = json.loads(document_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise WorkflowParseError(reason=str(e)) from e
    # Rejects non-workflow documents before anything is rewritten
    parse_document(document)
    nodes, _ = extract_nodes_object(document)

    applied = {}
    for key, (node_id, input_key) in final_mappings.items():
        node = nodes.get(node_id)
        inputs = node.get("inputs") if isinstance(node, dict) else None
        if not isinstance(inputs, dict) or input_key not in inputs:
            log_structured("warning", "mapping_target_missing", field=key, node_id=node_id, input_key=input_key)
            continue
        inputs[input_key] = f"{{{{{placeholder_for_key(key)}}}}}"
        applied[key] = {"nodeId": node_id, "inputKey": input_key}

    result = {"name": name, "description": description, "nodes": nodes}
    if applied:
        result["fieldMappings"] = applied
    log_structured("info", "field_mappings_applied", name=name, applied=sorted(applied))
    return result
