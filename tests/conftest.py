"""
Pytest fixtures: sample ComfyUI workflows and a capturing log handler
"""

import json
import logging
import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from comfyui_fieldmap_mcp.mcp_utils import JSONFormatter, clear_correlation_id  # noqa: E402


def node(class_type, title=None, **inputs):
    """Build one API-format node dict."""
    entry = {"class_type": class_type, "inputs": inputs}
    if title is not None:
        entry["_meta"] = {"title": title}
    return entry


@pytest.fixture
def sdxl_workflow():
    """Checkpoint text-to-image workflow with KSampler positive/negative wiring."""
    return {
        "3": node(
            "KSampler",
            seed=42,
            steps="{{steps}}",
            cfg="{{cfg}}",
            sampler_name="{{sampler_name}}",
            scheduler="{{scheduler}}",
            denoise=1.0,
            model=["4", 0],
            positive=["6", 0],
            negative=["7", 0],
            latent_image=["5", 0],
        ),
        "4": node("CheckpointLoaderSimple", "Load Checkpoint", ckpt_name="{{ckpt_name}}"),
        "5": node("EmptyLatentImage", width="{{width}}", height="{{height}}", batch_size=1),
        "6": node("CLIPTextEncode", "CLIP Text Encode (Prompt)", text="{{positive_prompt}}", clip=["4", 1]),
        "7": node("CLIPTextEncode", "CLIP Text Encode (Prompt)", text="{{negative_prompt}}", clip=["4", 1]),
        "8": node("VAEDecode", samples=["3", 0], vae=["4", 2]),
        "9": node("SaveImage", filename_prefix="ComfyUI", images=["8", 0]),
    }


@pytest.fixture
def flux_workflow():
    """UNET workflow: DualCLIPLoader, FluxGuidance -> BasicGuider, no negative branch."""
    return {
        "1": node("UNETLoader", unet_name="{{unet_name}}", weight_dtype="default"),
        "2": node("DualCLIPLoader", clip_name1="{{clip_name1}}", clip_name2="{{clip_name2}}", type="flux"),
        "3": node("VAELoader", vae_name="{{vae_name}}"),
        "4": node("CLIPTextEncode", "Prompt", text="{{positive_prompt}}", clip=["2", 0]),
        "5": node("FluxGuidance", conditioning=["4", 0], guidance=3.5),
        "6": node("BasicGuider", model=["1", 0], conditioning=["5", 0]),
        "7": node("KSamplerSelect", sampler_name="{{sampler_name}}"),
        "8": node("BasicScheduler", scheduler="{{scheduler}}", steps="{{steps}}", denoise=1.0, model=["1", 0]),
        "9": node("RandomNoise", noise_seed=0),
        "10": node("EmptySD3LatentImage", width="{{width}}", height="{{height}}", batch_size=1),
        "11": node(
            "SamplerCustomAdvanced",
            noise=["9", 0],
            guider=["6", 0],
            sampler=["7", 0],
            sigmas=["8", 0],
            latent_image=["10", 0],
        ),
        "12": node("VAEDecode", samples=["11", 0], vae=["3", 0]),
        "13": node("SaveImage", images=["12", 0]),
    }


@pytest.fixture
def wan_i2v_workflow():
    """Image-to-video workflow with high/low noise model pair, wrapped in "nodes"."""
    return {
        "name": "Wan I2V",
        "description": "Two-stage image to video",
        "nodes": {
            "1": node("UNETLoader", "High Noise Model", unet_name="{{highnoise_unet_name}}"),
            "2": node("UNETLoader", "Low Noise Model", unet_name="{{lownoise_unet_name}}"),
            "3": node("CLIPLoader", clip_name="{{clip_name}}", type="wan"),
            "4": node("VAELoader", vae_name="{{vae_name}}"),
            "5": node("LoadImage", image="{{image_filename}}"),
            "6": node("CLIPTextEncode", "Positive", text="{{positive_prompt}}", clip=["3", 0]),
            "7": node("CLIPTextEncode", "Negative", text="{{negative_prompt}}", clip=["3", 0]),
            "8": node(
                "WanImageToVideo",
                positive=["6", 0],
                negative=["7", 0],
                vae=["4", 0],
                start_image=["5", 0],
                width="{{width}}",
                height="{{height}}",
                length="{{length}}",
                batch_size=1,
            ),
            "9": node("KSamplerAdvanced", model=["1", 0], positive=["8", 0], negative=["8", 1], latent_image=["8", 2]),
            "10": node("KSamplerAdvanced", model=["2", 0], positive=["8", 0], negative=["8", 1], latent_image=["9", 0]),
            "11": node("VAEDecode", samples=["10", 0], vae=["4", 0]),
            "12": node("CreateVideo", images=["11", 0], fps="{{frame_rate}}"),
            "13": node("SaveVideo", video=["12", 0]),
        },
    }


@pytest.fixture
def as_json():
    """Serialize a workflow dict to document text."""
    return json.dumps


class CapturingLogHandler(logging.Handler):
    """Handler that captures log records for testing."""

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)

    def get_json_logs(self):
        """Return list of parsed JSON log entries."""
        formatter = JSONFormatter()
        return [json.loads(formatter.format(record)) for record in self.records]

    def messages(self):
        return [record.getMessage() for record in self.records]

    def clear(self):
        self.records = []


@pytest.fixture
def capturing_logger():
    """Fixture providing a capturing log handler on the package logger."""
    logger = logging.getLogger("comfyui-fieldmap")

    handler = CapturingLogHandler()
    handler.setLevel(logging.DEBUG)
    logger.addHandler(handler)

    original_level = logger.level
    logger.setLevel(logging.DEBUG)

    yield handler

    logger.removeHandler(handler)
    logger.setLevel(original_level)
    handler.clear()
    clear_correlation_id()
