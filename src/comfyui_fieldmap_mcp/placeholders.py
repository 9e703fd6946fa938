"""
Placeholder Scanner

Finds the {{placeholder}} tokens a workflow actually uses and derives the
capability flags the generation screens use to show or hide controls.

Matching is exact: an input counts only when its whole value is the token.
"a {{x}} b" is an ordinary string and is not reported as {{x}}.
"""

from dataclasses import asdict, dataclass
from typing import AbstractSet, Dict, FrozenSet, Tuple

from .graph import PlaceholderToken, WorkflowGraph
from .role_classifier import prompt_candidates
from .template_keys import WorkflowCategory, is_role_ambiguous, optional_keys, placeholder_names_for


def scan_placeholders(graph: WorkflowGraph) -> FrozenSet[str]:
    """
    Collect every distinct placeholder name used in any node input.

    Args:
        graph: Parsed workflow graph.

    Returns:
        Frozen set of names (without braces), e.g. {"positive_prompt", "steps"}.
    """
    names = set()
    for node in graph:
        for _, value in node.inputs:
            if isinstance(value, PlaceholderToken):
                names.add(value.name)
    return frozenset(names)


def offered_optional_keys(category: WorkflowCategory, graph: WorkflowGraph) -> Tuple[str, ...]:
    """
    Optional keys the workflow actually exposes.

    A key is offered when one of its placeholder tokens is present; prompt
    keys are offered when the role classifier found a candidate for them.
    Absent keys are simply left out.
    """
    present = scan_placeholders(graph)
    prompts = None

    offered = []
    for key in optional_keys(category, graph):
        if is_role_ambiguous(key):
            if prompts is None:
                prompts = prompt_candidates(graph)
            if prompts.get(key):
                offered.append(key)
        elif present.intersection(placeholder_names_for(key)):
            offered.append(key)
    return tuple(offered)


@dataclass(frozen=True)
class WorkflowCapabilities:
    """
    Capability flags derived from the placeholders present in a workflow.

    Naming convention:
    - has_*_name -> dropdown visibility (placeholder exists)
    - has_lora / has_highnoise_lora / has_lownoise_lora -> LoRA injection chain
      (triggered by the model loader placeholder, not a LoRA placeholder)
    """

    # Parameters
    has_negative_prompt: bool = False
    has_cfg: bool = False
    has_width: bool = False
    has_height: bool = False
    has_megapixels: bool = False
    has_length: bool = False
    has_frame_rate: bool = False
    has_steps: bool = False
    has_sampler_name: bool = False
    has_scheduler: bool = False
    has_seed: bool = False
    has_denoise: bool = False
    has_batch_size: bool = False

    # Model dropdowns
    has_checkpoint_name: bool = False
    has_unet_name: bool = False
    has_highnoise_unet_name: bool = False
    has_lownoise_unet_name: bool = False
    has_vae_name: bool = False
    has_clip_name: bool = False
    has_clip_name1: bool = False
    has_clip_name2: bool = False

    # Mandatory LoRA dropdowns
    has_lora_name: bool = False
    has_highnoise_lora_name: bool = False
    has_lownoise_lora_name: bool = False

    # LoRA injection chains
    has_lora: bool = False
    has_highnoise_lora: bool = False
    has_lownoise_lora: bool = False

    # Reference images
    has_reference_image_1: bool = False
    has_reference_image_2: bool = False

    is_checkpoint_mode: bool = False

    @classmethod
    def from_placeholders(cls, names: AbstractSet[str]) -> "WorkflowCapabilities":
        return cls(
            has_negative_prompt="negative_prompt" in names or "negative_text" in names,
            has_cfg="cfg" in names,
            has_width="width" in names,
            has_height="height" in names,
            has_megapixels="megapixels" in names,
            has_length="length" in names,
            has_frame_rate="frame_rate" in names,
            has_steps="steps" in names,
            has_sampler_name="sampler_name" in names,
            has_scheduler="scheduler" in names,
            has_seed="seed" in names,
            has_denoise="denoise" in names,
            has_batch_size="batch_size" in names,
            has_checkpoint_name="ckpt_name" in names,
            has_unet_name="unet_name" in names,
            has_highnoise_unet_name="highnoise_unet_name" in names,
            has_lownoise_unet_name="lownoise_unet_name" in names,
            has_vae_name="vae_name" in names,
            has_clip_name="clip_name" in names,
            has_clip_name1="clip_name1" in names,
            has_clip_name2="clip_name2" in names,
            has_lora_name="lora_name" in names,
            has_highnoise_lora_name="highnoise_lora_name" in names,
            has_lownoise_lora_name="lownoise_lora_name" in names,
            has_lora="ckpt_name" in names or "unet_name" in names,
            has_highnoise_lora="highnoise_unet_name" in names,
            has_lownoise_lora="lownoise_unet_name" in names,
            # Both naming conventions are in use
            has_reference_image_1="reference_image_1" in names or "reference_1" in names,
            has_reference_image_2="reference_image_2" in names or "reference_2" in names,
            is_checkpoint_mode="ckpt_name" in names,
        )

    @classmethod
    def from_graph(cls, graph: WorkflowGraph) -> "WorkflowCapabilities":
        return cls.from_placeholders(scan_placeholders(graph))

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    def enabled(self) -> list:
        """Names of the flags that are set, in declaration order."""
        return [name for name, value in asdict(self).items() if value]
