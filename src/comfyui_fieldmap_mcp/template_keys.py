"""
Template Key Registry

Centralized registry of the field keys a workflow category exposes and the
JSON input keys they bind to.

NOTE: All tables are immutable module-level data built once at import time.
Graph-dependent adjustments (DualCLIPLoader, BasicGuider) are computed per
call and never written back.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .graph import WorkflowGraph


class WorkflowCategory(str, Enum):
    """Workflow categories, named <task>_<loader flavour>."""

    TTI_CHECKPOINT = "TTI_CHECKPOINT"  # Text-to-Image, checkpoint loader
    TTI_UNET = "TTI_UNET"  # Text-to-Image, UNET loader
    IIP_CHECKPOINT = "IIP_CHECKPOINT"  # Inpainting, checkpoint loader
    IIP_UNET = "IIP_UNET"  # Inpainting, UNET loader
    TTV_UNET = "TTV_UNET"  # Text-to-Video
    ITV_UNET = "ITV_UNET"  # Image-to-Video

    @classmethod
    def parse(cls, value: str) -> "WorkflowCategory":
        """Case-insensitive lookup by name. Raises ValueError if unknown."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            valid = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown workflow category '{value}'. Use: {valid}") from None


# Fields whose candidates come from graph tracing instead of placeholder lookup
ROLE_AMBIGUOUS_KEYS = frozenset({"positive_text", "negative_text"})

# STRICTLY required keys per category - a workflow MUST map these
REQUIRED_KEYS_BY_CATEGORY = MappingProxyType(
    {
        WorkflowCategory.TTI_CHECKPOINT: ("positive_text",),
        WorkflowCategory.TTI_UNET: ("positive_text",),
        WorkflowCategory.IIP_CHECKPOINT: ("positive_text", "image"),
        WorkflowCategory.IIP_UNET: ("positive_text", "image"),
        WorkflowCategory.TTV_UNET: ("positive_text",),
        WorkflowCategory.ITV_UNET: ("positive_text", "image"),
    }
)

_VIDEO_OPTIONAL = (
    "negative_text",
    "highnoise_unet_name",
    "lownoise_unet_name",
    "highnoise_lora_name",
    "lownoise_lora_name",
    "vae_name",
    "clip_name",
    "width",
    "height",
    "length",
    "frame_rate",
)

# Optional keys per category - offered in the editor when the workflow has them
OPTIONAL_KEYS_BY_CATEGORY = MappingProxyType(
    {
        WorkflowCategory.TTI_CHECKPOINT: (
            "negative_text",
            "ckpt_name",
            "width",
            "height",
            "steps",
            "cfg",
            "sampler_name",
            "scheduler",
            "lora_name",
        ),
        WorkflowCategory.TTI_UNET: (
            "negative_text",
            "unet_name",
            "vae_name",
            "clip_name",
            "width",
            "height",
            "steps",
            "cfg",
            "sampler_name",
            "scheduler",
            "lora_name",
        ),
        WorkflowCategory.IIP_CHECKPOINT: (
            "negative_text",
            "ckpt_name",
            "megapixels",
            "steps",
            "cfg",
            "sampler_name",
            "scheduler",
            "lora_name",
        ),
        WorkflowCategory.IIP_UNET: (
            "negative_text",
            "unet_name",
            "vae_name",
            "clip_name",
            "megapixels",
            "steps",
            "cfg",
            "sampler_name",
            "scheduler",
            "lora_name",
        ),
        WorkflowCategory.TTV_UNET: _VIDEO_OPTIONAL,
        WorkflowCategory.ITV_UNET: _VIDEO_OPTIONAL,
    }
)

# Field key -> JSON input key, where it is not derivable by prefix stripping
_EXPLICIT_INPUT_KEYS = MappingProxyType(
    {
        "positive_text": "text",
        "negative_text": "text",
        "frame_rate": "fps",
    }
)

# Role prefixes that distinguish several fields bound to the same input key
ROLE_PREFIXES = ("highnoise_", "lownoise_", "clip1_", "clip2_")

# Legacy token names accepted for a key besides the key itself.
# Aliases must not overlap between keys.
PLACEHOLDER_ALIASES = MappingProxyType(
    {
        "positive_text": ("positive_prompt", "prompt"),
        "negative_text": ("negative_prompt",),
        "image": ("image_filename",),
    }
)

# Token written into the document when a mapping is persisted
_PERSISTED_PLACEHOLDERS = MappingProxyType(
    {
        "positive_text": "positive_prompt",
        "negative_text": "negative_prompt",
    }
)

# Filename prefix per category (workflow library convention)
CATEGORY_FILENAME_PREFIXES = MappingProxyType(
    {
        WorkflowCategory.TTI_CHECKPOINT: "tti_checkpoint_",
        WorkflowCategory.TTI_UNET: "tti_unet_",
        WorkflowCategory.IIP_CHECKPOINT: "iip_checkpoint_",
        WorkflowCategory.IIP_UNET: "iip_unet_",
        WorkflowCategory.TTV_UNET: "ttv_unet_",
        WorkflowCategory.ITV_UNET: "itv_unet_",
    }
)


# =============================================================================
# Key lookups
# =============================================================================


def required_keys(category: WorkflowCategory, graph: Optional[WorkflowGraph] = None) -> Tuple[str, ...]:
    """
    Strictly required keys for a category.

    The graph is accepted for symmetry with optional_keys(); no structural
    feature currently relaxes a required key.
    """
    return REQUIRED_KEYS_BY_CATEGORY.get(category, ())


def optional_keys(category: WorkflowCategory, graph: Optional[WorkflowGraph] = None) -> Tuple[str, ...]:
    """
    Optional keys for a category, adjusted for the workflow structure.

    - DualCLIPLoader replaces clip_name with clip_name1 + clip_name2
    - BasicGuider (single conditioning branch) has no CFG and no negative prompt

    Keys that are strictly required are never repeated here.
    """
    keys = list(OPTIONAL_KEYS_BY_CATEGORY.get(category, ()))

    if graph is not None:
        if graph.has_class_type("DualCLIPLoader") and "clip_name" in keys:
            index = keys.index("clip_name")
            keys[index : index + 1] = ["clip_name1", "clip_name2"]

        if graph.has_class_type("BasicGuider"):
            keys = [k for k in keys if k not in ("cfg", "negative_text")]

    required = set(required_keys(category, graph))
    return tuple(k for k in keys if k not in required)


def json_input_key_for(key: str) -> str:
    """
    Get the JSON input key a field key binds to.

    Example: json_input_key_for("highnoise_unet_name") returns "unet_name"
    Returns the key itself if no mapping applies.
    """
    explicit = _EXPLICIT_INPUT_KEYS.get(key)
    if explicit:
        return explicit
    for prefix in ROLE_PREFIXES:
        if key.startswith(prefix) and len(key) > len(prefix):
            return key[len(prefix) :]
    return key


def placeholder_names_for(key: str) -> Tuple[str, ...]:
    """Token names that bind to `key`: the key itself plus legacy aliases."""
    return (key,) + PLACEHOLDER_ALIASES.get(key, ())


def placeholder_for_key(key: str) -> str:
    """Canonical token name written for `key` when a mapping is saved."""
    return _PERSISTED_PLACEHOLDERS.get(key, key)


def is_role_ambiguous(key: str) -> bool:
    return key in ROLE_AMBIGUOUS_KEYS


# =============================================================================
# Field display registry
# =============================================================================


@dataclass(frozen=True)
class RequiredField:
    """A field that needs to be mapped to a node input."""

    key: str
    display_name: str
    description: str
    is_required: bool = True


FIELD_INFO: Mapping[str, Tuple[str, str]] = MappingProxyType(
    {
        "positive_text": ("Positive Prompt", "The text prompt for generation"),
        "negative_text": ("Negative Prompt", "Text describing what to avoid in generation"),
        "ckpt_name": ("Checkpoint", "The checkpoint model to use"),
        "unet_name": ("UNET Model", "The diffusion model to use"),
        "highnoise_unet_name": ("High Noise UNET", "Diffusion model for the high-noise stage"),
        "lownoise_unet_name": ("Low Noise UNET", "Diffusion model for the low-noise stage"),
        "vae_name": ("VAE", "The VAE encoder/decoder"),
        "clip_name": ("CLIP", "The CLIP text encoder"),
        "clip_name1": ("CLIP 1 (T5)", "First CLIP text encoder (T5-XXL for Flux)"),
        "clip_name2": ("CLIP 2 (L)", "Second CLIP text encoder (L for Flux)"),
        "width": ("Width", "Output width"),
        "height": ("Height", "Output height"),
        "steps": ("Steps", "Number of sampling steps"),
        "cfg": ("CFG Scale", "Classifier-free guidance scale"),
        "sampler_name": ("Sampler", "Sampling algorithm"),
        "scheduler": ("Scheduler", "Noise scheduling method"),
        "megapixels": ("Megapixels", "Target size in megapixels"),
        "lora_name": ("LoRA", "LoRA adapter model"),
        "highnoise_lora_name": ("High Noise LoRA", "LoRA for the high-noise stage"),
        "lownoise_lora_name": ("Low Noise LoRA", "LoRA for the low-noise stage"),
        "length": ("Length", "Video length in frames"),
        "frame_rate": ("Frame Rate", "Video frames per second"),
        "image": ("Input Image", "Source image for generation"),
    }
)


def display_name(key: str) -> str:
    info = FIELD_INFO.get(key)
    return info[0] if info else key[:1].upper() + key[1:]


def description(key: str) -> str:
    info = FIELD_INFO.get(key)
    return info[1] if info else f"Required field: {key}"


def required_field(key: str, is_required: bool = True) -> RequiredField:
    return RequiredField(key=key, display_name=display_name(key), description=description(key), is_required=is_required)
