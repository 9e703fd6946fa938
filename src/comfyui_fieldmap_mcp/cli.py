"""
fieldmap CLI — workflow field mapping from the shell.

Usage:
    fieldmap analyze workflow.json --category TTI_UNET
    fieldmap analyze workflow.json --nodes @object_info.json
    fieldmap detect workflow.json
    fieldmap scan workflow.json --category ITV_UNET
    fieldmap classify workflow.json
    fieldmap validate-nodes workflow.json --nodes '["KSampler", "CLIPTextEncode"]'
    fieldmap categories
    cat workflow.json | fieldmap analyze -

JSON results go to stdout, messages to stderr.
"""

import argparse
import json
import os
import sys
from pathlib import Path

from core.errors import CategoryDetectionError, MissingFieldsError, MissingNodesError, RichMCPError, WorkflowParseError

from .mcp_utils import configure_logging, correlation_scope

# Exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_VALIDATION = 3
EXIT_NOT_FOUND = 6

# Domain error code -> exit code
_EXIT_CODES = {
    "PARSE_ERROR": EXIT_VALIDATION,
    "MISSING_NODES": EXIT_VALIDATION,
    "MISSING_FIELDS": EXIT_VALIDATION,
    "UNKNOWN_CATEGORY": EXIT_VALIDATION,
    "VALIDATION_ERROR": EXIT_VALIDATION,
    "INVALID_PARAMS": EXIT_VALIDATION,
    "NOT_FOUND": EXIT_NOT_FOUND,
}


def _output(data: dict, pretty: bool = False) -> None:
    """Write JSON data to stdout (results/data only)."""
    if pretty:
        json.dump(data, sys.stdout, indent=2, default=str)
    else:
        json.dump(data, sys.stdout, default=str)
    sys.stdout.write("\n")
    sys.stdout.flush()


def _msg(text: str) -> None:
    """Write a status/progress message to stderr."""
    sys.stderr.write(text)
    if not text.endswith("\n"):
        sys.stderr.write("\n")
    sys.stderr.flush()


def _error(message: str, code: str = "CLI_ERROR") -> dict:
    return {"error": message, "code": code}


def _is_pretty() -> bool:
    return os.environ.get("FIELDMAP_PRETTY", "").lower() in ("1", "true", "yes")


def _exit_code_for(result: dict) -> int:
    return _EXIT_CODES.get(result.get("code", ""), EXIT_ERROR)


class _InputNotFound(Exception):
    pass


def _read_text(path: str) -> str:
    """Read a UTF-8 file argument; "-" reads stdin."""
    try:
        if path == "-":
            return sys.stdin.read()
        p = Path(path)
        if not p.exists():
            raise _InputNotFound(f"File not found: {path}")
        return p.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise WorkflowParseError(reason=f"{path} is not UTF-8 text ({e.reason})") from e


def _parse_nodes_arg(value: str) -> list:
    """Parse --nodes: a JSON list or /object_info dict, raw or as @file."""
    from .compatibility import available_class_types

    text = _read_text(value[1:]) if value.startswith("@") else value
    return sorted(available_class_types(json.loads(text)))


# ─── Commands ─────────────────────────────────────────────────────────


def cmd_analyze(args):
    """Parse, validate nodes and build the default field mapping."""
    from .import_pipeline import analyze_workflow

    pretty = args.pretty or _is_pretty()
    nodes = _parse_nodes_arg(args.nodes) if args.nodes else None
    try:
        analysis = analyze_workflow(_read_text(args.workflow), args.category, nodes)
    except (MissingNodesError, MissingFieldsError) as e:
        _msg(e.error)
        result = e.to_dict()
        _output(result, pretty)
        return _exit_code_for(result)

    result = analysis.to_dict()
    if not args.verbose:
        result.pop("capabilities", None)
    _output(result, pretty)
    return EXIT_OK


def cmd_detect(args):
    """Detect workflow category."""
    from .detection import detect_category
    from .graph import parse_workflow

    pretty = args.pretty or _is_pretty()
    graph = parse_workflow(_read_text(args.workflow))
    category = detect_category(graph)
    if category is None:
        _output(CategoryDetectionError(class_types=graph.class_types()).to_dict(), pretty)
        return EXIT_VALIDATION
    _output({"category": category.value}, pretty)
    return EXIT_OK


def cmd_scan(args):
    """List placeholders and capability flags."""
    from .graph import parse_workflow
    from .placeholders import WorkflowCapabilities, offered_optional_keys, scan_placeholders
    from .template_keys import WorkflowCategory

    pretty = args.pretty or _is_pretty()
    graph = parse_workflow(_read_text(args.workflow))
    names = scan_placeholders(graph)
    result = {
        "placeholders": sorted(names),
        "capabilities": WorkflowCapabilities.from_placeholders(names).enabled(),
    }
    if args.category:
        result["offered_optional_keys"] = list(offered_optional_keys(WorkflowCategory.parse(args.category), graph))
    _output(result, pretty)
    return EXIT_OK


def cmd_classify(args):
    """Classify prompt encoders as positive/negative."""
    from .graph import parse_workflow
    from .role_classifier import classify_encoders

    pretty = args.pretty or _is_pretty()
    graph = parse_workflow(_read_text(args.workflow))
    _output({"encoders": [c.to_dict() for c in classify_encoders(graph)]}, pretty)
    return EXIT_OK


def cmd_validate_nodes(args):
    """Check node types against a server node list."""
    from .compatibility import validate_nodes
    from .graph import parse_workflow

    pretty = args.pretty or _is_pretty()
    graph = parse_workflow(_read_text(args.workflow))
    missing = validate_nodes(graph, _parse_nodes_arg(args.nodes))
    _output({"compatible": not missing, "missing_nodes": missing}, pretty)
    if missing:
        _msg(f"{len(missing)} node type(s) not available on the server")
        return EXIT_VALIDATION
    return EXIT_OK


def cmd_categories(args):
    """List categories with their field keys."""
    from .template_keys import WorkflowCategory, optional_keys, required_keys

    pretty = args.pretty or _is_pretty()
    _output(
        {
            category.value: {
                "required": list(required_keys(category)),
                "optional": list(optional_keys(category)),
            }
            for category in WorkflowCategory
        },
        pretty,
    )
    return EXIT_OK


# ─── Parser ───────────────────────────────────────────────────────────


def _category_arg(value: str) -> str:
    from .template_keys import WorkflowCategory

    try:
        return WorkflowCategory.parse(value).value
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldmap",
        description="ComfyUI workflow field mapping",
    )
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    parser.add_argument("--log-level", help="Log level for stderr JSON logs (default: $FIELDMAP_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # ── analyze ──
    p_an = sub.add_parser("analyze", help="Full import analysis")
    p_an.add_argument("workflow", help="Workflow JSON file ('-' for stdin)")
    p_an.add_argument("--category", type=_category_arg, help="Workflow category (auto-detected if omitted)")
    p_an.add_argument("--nodes", help="Server node types: JSON list/object_info, or @file")
    p_an.add_argument("-v", "--verbose", action="store_true", help="Include capability flags")
    p_an.set_defaults(func=cmd_analyze)

    # ── detect ──
    p_det = sub.add_parser("detect", help="Detect workflow category")
    p_det.add_argument("workflow", help="Workflow JSON file ('-' for stdin)")
    p_det.set_defaults(func=cmd_detect)

    # ── scan ──
    p_scan = sub.add_parser("scan", help="List {{placeholders}}")
    p_scan.add_argument("workflow", help="Workflow JSON file ('-' for stdin)")
    p_scan.add_argument("--category", type=_category_arg, help="Also list offered optional fields")
    p_scan.set_defaults(func=cmd_scan)

    # ── classify ──
    p_cls = sub.add_parser("classify", help="Classify prompt encoders")
    p_cls.add_argument("workflow", help="Workflow JSON file ('-' for stdin)")
    p_cls.set_defaults(func=cmd_classify)

    # ── validate-nodes ──
    p_vn = sub.add_parser("validate-nodes", help="Check node types against a server")
    p_vn.add_argument("workflow", help="Workflow JSON file ('-' for stdin)")
    p_vn.add_argument("--nodes", required=True, help="Server node types: JSON list/object_info, or @file")
    p_vn.set_defaults(func=cmd_validate_nodes)

    # ── categories ──
    p_cat = sub.add_parser("categories", help="List workflow categories")
    p_cat.set_defaults(func=cmd_categories)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    configure_logging(args.log_level)
    pretty = args.pretty or _is_pretty()
    try:
        with correlation_scope():
            exit_code = args.func(args)
        sys.exit(exit_code or EXIT_OK)
    except _InputNotFound as e:
        _output(_error(str(e), "NOT_FOUND"), pretty)
        sys.exit(EXIT_NOT_FOUND)
    except json.JSONDecodeError as e:
        _output(_error(f"Invalid JSON: {e}", "INVALID_PARAMS"), pretty)
        sys.exit(EXIT_VALIDATION)
    except RichMCPError as e:
        result = e.to_dict()
        _output(result, pretty)
        sys.exit(_exit_code_for(result))
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        _output(_error(str(e), "CLI_ERROR"), pretty)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
