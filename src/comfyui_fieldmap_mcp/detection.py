"""
Workflow category detection from the node types present in a graph.

Rules, most specific first:
    LoadImage + video output   -> ITV_UNET
    video output               -> TTV_UNET
    inpaint nodes + loader     -> IIP_CHECKPOINT / IIP_UNET
    LoadImage + loader         -> IIP_CHECKPOINT / IIP_UNET
    checkpoint loader          -> TTI_CHECKPOINT
    UNET loader                -> TTI_UNET
"""

from typing import Optional

from .graph import WorkflowGraph
from .template_keys import WorkflowCategory

VIDEO_MARKERS = ("createvideo", "vhs_videocombine", "videolinearcfgguidance")
INPAINT_MARKERS = ("setlatentnoisemask", "inpaint")
CHECKPOINT_LOADER = "checkpointloadersimple"
UNET_LOADER = "unetloader"
LOAD_IMAGE = "loadimage"


def detect_category(graph: WorkflowGraph) -> Optional[WorkflowCategory]:
    """Guess the workflow category, or None when no rule applies."""
    class_types = [c.lower() for c in graph.class_types()]

    has_video = any(marker in c for c in class_types for marker in VIDEO_MARKERS)
    has_load_image = LOAD_IMAGE in class_types
    has_inpaint = any(marker in c for c in class_types for marker in INPAINT_MARKERS)
    has_checkpoint = CHECKPOINT_LOADER in class_types
    has_unet = UNET_LOADER in class_types

    if has_load_image and has_video:
        return WorkflowCategory.ITV_UNET
    if has_video:
        return WorkflowCategory.TTV_UNET
    if (has_inpaint or has_load_image) and has_checkpoint:
        return WorkflowCategory.IIP_CHECKPOINT
    if (has_inpaint or has_load_image) and has_unet:
        return WorkflowCategory.IIP_UNET
    if has_checkpoint:
        return WorkflowCategory.TTI_CHECKPOINT
    if has_unet:
        return WorkflowCategory.TTI_UNET
    return None
