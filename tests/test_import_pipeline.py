"""Tests for the import pipeline: parse -> nodes -> fields."""

import json

import pytest

from core.errors import (
    CategoryDetectionError,
    MissingFieldsError,
    MissingNodesError,
    WorkflowParseError,
)
from comfyui_fieldmap_mcp.import_pipeline import analyze_workflow, finalize_mapping
from comfyui_fieldmap_mcp.template_keys import WorkflowCategory

from conftest import node


class TestAnalyzeWorkflow:
    def test_explicit_category(self, sdxl_workflow):
        analysis = analyze_workflow(json.dumps(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT)
        assert analysis.category is WorkflowCategory.TTI_CHECKPOINT
        assert not analysis.category_detected
        assert analysis.mapping_state.final_mappings()["positive_text"] == ("6", "text")
        assert "ckpt_name" in analysis.placeholders
        assert analysis.capabilities.is_checkpoint_mode

    def test_category_string(self, flux_workflow):
        analysis = analyze_workflow(json.dumps(flux_workflow), "tti_unet")
        assert analysis.category is WorkflowCategory.TTI_UNET

    def test_detected_category(self, wan_i2v_workflow):
        analysis = analyze_workflow(json.dumps(wan_i2v_workflow))
        assert analysis.category is WorkflowCategory.ITV_UNET
        assert analysis.category_detected

    def test_undetectable_category(self):
        doc = {"1": node("CLIPTextEncode", text="x")}
        with pytest.raises(CategoryDetectionError) as exc:
            analyze_workflow(json.dumps(doc))
        assert exc.value.details["class_types"] == ["CLIPTextEncode"]

    def test_bad_category_string(self, sdxl_workflow):
        with pytest.raises(ValueError):
            analyze_workflow(json.dumps(sdxl_workflow), "T2I")

    def test_parse_error_stops_pipeline(self):
        with pytest.raises(WorkflowParseError):
            analyze_workflow("not json", WorkflowCategory.TTI_UNET, available_class_types=set())

    def test_missing_nodes(self, sdxl_workflow):
        available = {"KSampler", "CheckpointLoaderSimple", "CLIPTextEncode", "VAEDecode", "SaveImage"}
        with pytest.raises(MissingNodesError) as exc:
            analyze_workflow(json.dumps(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT, available)
        assert exc.value.missing_nodes == ["EmptyLatentImage"]
        assert exc.value.to_dict()["code"] == "MISSING_NODES"

    def test_nodes_checked_before_fields(self, sdxl_workflow):
        # Both stages would fail; the node check comes first
        with pytest.raises(MissingNodesError):
            analyze_workflow(json.dumps(sdxl_workflow), WorkflowCategory.IIP_CHECKPOINT, {"KSampler"})

    def test_missing_fields_aggregated(self):
        doc = {
            "1": node("CheckpointLoaderSimple", ckpt_name="{{ckpt_name}}"),
            "2": node("KSampler", model=["1", 0]),
        }
        with pytest.raises(MissingFieldsError) as exc:
            analyze_workflow(json.dumps(doc), WorkflowCategory.IIP_CHECKPOINT)
        assert exc.value.field_keys == ["positive_text", "image"]
        assert exc.value.display_names == ["Positive Prompt", "Input Image"]

    def test_to_dict_is_json_serializable(self, wan_i2v_workflow):
        data = analyze_workflow(json.dumps(wan_i2v_workflow)).to_dict()
        encoded = json.loads(json.dumps(data))
        assert encoded["category"] == "ITV_UNET"
        assert encoded["name"] == "Wan I2V"
        assert encoded["final_mappings"]["image"] == ["5", "image"]
        assert encoded["mapping"]["is_complete"] is True

    def test_stage_logging(self, sdxl_workflow, capturing_logger):
        analyze_workflow(json.dumps(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT)
        messages = capturing_logger.messages()
        assert messages[0] == "workflow_parsed"
        assert "node_validation_skipped" in messages
        assert messages[-1] == "workflow_analyzed"

        logs = capturing_logger.get_json_logs()
        assert len({log["correlation_id"] for log in logs}) == 1


class TestFinalizeMapping:
    def test_flattens_mapping(self, sdxl_workflow):
        state = analyze_workflow(json.dumps(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT).mapping_state
        final = finalize_mapping(state)
        assert final["positive_text"] == ("6", "text")
        assert final["steps"] == ("3", "steps")
        assert "lora_name" not in final

    def test_unmapped_required_field(self, sdxl_workflow):
        state = analyze_workflow(json.dumps(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT).mapping_state
        state = state.select_candidate("positive_text", -1)
        with pytest.raises(MissingFieldsError) as exc:
            finalize_mapping(state)
        assert exc.value.field_keys == ["positive_text"]
