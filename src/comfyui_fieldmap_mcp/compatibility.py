"""
Node Compatibility Validator

Diffs the class types a workflow uses against the node types a ComfyUI
server reports, so a workflow that cannot run there is rejected up front.
"""

from typing import Any, Iterable, List, Mapping, Union

from .graph import WorkflowGraph


def available_class_types(object_info: Union[Mapping[str, Any], Iterable[str]]) -> frozenset:
    """
    Build the capability snapshot from a server response.

    Accepts the `/object_info` dict (node type -> schema) or any iterable of
    class type names.
    """
    if isinstance(object_info, Mapping):
        return frozenset(str(name) for name in object_info.keys())
    if isinstance(object_info, str):
        raise TypeError("Expected a collection of class types, got a single string")
    return frozenset(str(name) for name in object_info)


def validate_nodes(graph: WorkflowGraph, available: Iterable[str]) -> List[str]:
    """
    Return class types used by `graph` that the server does not provide.

    Args:
        graph: Parsed workflow graph.
        available: Class types known to the server.

    Returns:
        Sorted list of missing class types. Empty if fully compatible.

    Raises:
        TypeError: If `available` is a single string.
    """
    if isinstance(available, str):
        raise TypeError("Expected a collection of class types, got a single string")
    known = available if isinstance(available, (set, frozenset)) else set(available)
    return [class_type for class_type in graph.class_types() if class_type not in known]
