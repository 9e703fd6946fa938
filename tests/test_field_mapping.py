"""Tests for candidate discovery and mapping state."""

import json

import pytest

from comfyui_fieldmap_mcp.field_mapping import (
    FieldCandidate,
    FieldMappingState,
    WorkflowMappingState,
    create_field_mapping_state,
    find_candidates_for_field,
    missing_required_fields,
)
from comfyui_fieldmap_mcp.graph import parse_workflow
from comfyui_fieldmap_mcp.template_keys import WorkflowCategory, optional_keys, required_field, required_keys

from conftest import node


def _graph(doc):
    return parse_workflow(json.dumps(doc))


def _candidate(node_id, input_key="text"):
    return FieldCandidate(node_id=node_id, node_name=node_id, class_type="CLIPTextEncode", input_key=input_key)


class TestFindCandidates:
    """Direct placeholder binding for role-unambiguous keys."""

    def test_binds_matching_token(self, sdxl_workflow):
        candidates = find_candidates_for_field("steps", _graph(sdxl_workflow))
        assert [(c.node_id, c.input_key) for c in candidates] == [("3", "steps")]
        assert candidates[0].current_value == "{{steps}}"
        assert candidates[0].class_type == "KSampler"

    def test_role_prefixed_keys_do_not_cross_match(self, wan_i2v_workflow):
        graph = _graph(wan_i2v_workflow)
        high = find_candidates_for_field("highnoise_unet_name", graph)
        low = find_candidates_for_field("lownoise_unet_name", graph)
        assert [c.node_id for c in high] == ["1"]
        assert [c.node_id for c in low] == ["2"]
        assert high[0].input_key == "unet_name"

    def test_explicit_input_key(self, wan_i2v_workflow):
        candidates = find_candidates_for_field("frame_rate", _graph(wan_i2v_workflow))
        assert [(c.node_id, c.input_key) for c in candidates] == [("12", "fps")]

    def test_legacy_alias(self, wan_i2v_workflow):
        candidates = find_candidates_for_field("image", _graph(wan_i2v_workflow))
        assert [c.node_id for c in candidates] == ["5"]

    def test_literal_values_are_not_candidates(self):
        graph = _graph({"1": node("KSampler", steps=20, cfg="a {{cfg}} b")})
        assert find_candidates_for_field("steps", graph) == []
        assert find_candidates_for_field("cfg", graph) == []

    def test_token_for_other_key_on_same_input(self):
        graph = _graph({"1": node("UNETLoader", unet_name="{{lownoise_unet_name}}")})
        assert find_candidates_for_field("unet_name", graph) == []

    def test_role_ambiguous_uses_traced_candidates(self, sdxl_workflow):
        traced = {"positive_text": [_candidate("6")]}
        assert find_candidates_for_field("positive_text", _graph(sdxl_workflow), traced) == [_candidate("6")]
        assert find_candidates_for_field("negative_text", _graph(sdxl_workflow), traced) == []


class TestCreateFieldMappingState:
    def test_keys_match_registry(self, flux_workflow):
        graph = _graph(flux_workflow)
        state = create_field_mapping_state(graph, WorkflowCategory.TTI_UNET)
        expected = required_keys(WorkflowCategory.TTI_UNET, graph) + optional_keys(WorkflowCategory.TTI_UNET, graph)
        assert state.keys == list(expected)

    def test_defaults_to_first_candidate(self, sdxl_workflow):
        state = create_field_mapping_state(_graph(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT)
        assert state.get("positive_text").selected_candidate.node_id == "6"
        assert state.get("negative_text").selected_candidate.node_id == "7"
        assert state.get("ckpt_name").selected_candidate.node_id == "4"
        assert state.get("lora_name").selected_candidate_index == -1
        assert state.is_complete
        assert not state.all_fields_mapped

    def test_required_flags(self, wan_i2v_workflow):
        state = create_field_mapping_state(_graph(wan_i2v_workflow), WorkflowCategory.ITV_UNET)
        assert state.get("image").is_required
        assert not state.get("vae_name").is_required
        assert state.final_mappings()["frame_rate"] == ("12", "fps")

    def test_exactly_missing_required_key_reported(self, sdxl_workflow):
        # Checkpoint inpainting needs an image the text-to-image graph lacks
        state = create_field_mapping_state(_graph(sdxl_workflow), WorkflowCategory.IIP_CHECKPOINT)
        assert [f.key for f in missing_required_fields(state)] == ["image"]
        assert not state.is_complete

    def test_basic_guider_graph_has_no_negative_field(self, flux_workflow):
        state = create_field_mapping_state(_graph(flux_workflow), WorkflowCategory.TTI_UNET)
        assert state.get("negative_text") is None
        assert state.get("cfg") is None
        assert state.get("clip_name1").selected_candidate.node_id == "2"


class TestFieldMappingState:
    def test_index_validated(self):
        field = required_field("positive_text")
        with pytest.raises(ValueError):
            FieldMappingState(field=field, candidates=(), selected_candidate_index=0)
        with pytest.raises(ValueError):
            FieldMappingState(field=field, candidates=(_candidate("1"),), selected_candidate_index=-2)

    def test_properties(self):
        field = required_field("positive_text")
        state = FieldMappingState(field=field, candidates=(_candidate("1"), _candidate("2")), selected_candidate_index=-1)
        assert state.needs_remapping
        assert state.has_multiple_candidates
        assert not state.is_mapped
        assert state.selected_candidate is None


class TestWorkflowMappingState:
    def _state(self):
        positive = FieldMappingState(
            field=required_field("positive_text"),
            candidates=(_candidate("6"), _candidate("8")),
            selected_candidate_index=0,
        )
        negative = FieldMappingState(
            field=required_field("negative_text", is_required=False),
            candidates=(_candidate("7"), _candidate("8")),
            selected_candidate_index=0,
        )
        return WorkflowMappingState(WorkflowCategory.TTI_CHECKPOINT, (positive, negative))

    def test_duplicate_keys_rejected(self):
        mapping = FieldMappingState(field=required_field("steps"))
        with pytest.raises(ValueError, match="Duplicate"):
            WorkflowMappingState(WorkflowCategory.TTI_UNET, (mapping, mapping))

    def test_select_clears_same_site_elsewhere(self):
        state = self._state().select_candidate("negative_text", 1)
        state = state.select_candidate("positive_text", 1)
        assert state.get("positive_text").selected_candidate.node_id == "8"
        assert state.get("negative_text").selected_candidate_index == -1
        assert state.get("negative_text").needs_remapping

    def test_select_is_immutable(self):
        original = self._state()
        original.select_candidate("positive_text", 1)
        assert original.get("positive_text").selected_candidate_index == 0

    def test_select_unknown_key(self):
        with pytest.raises(KeyError):
            self._state().select_candidate("steps", 0)

    def test_select_out_of_range(self):
        with pytest.raises(ValueError):
            self._state().select_candidate("positive_text", 5)

    def test_same_node_different_input_not_cleared(self, sdxl_workflow):
        state = create_field_mapping_state(_graph(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT)
        state = state.select_candidate("width", 0)
        assert state.get("height").selected_candidate.node_id == "5"

    def test_final_mappings(self):
        assert self._state().final_mappings() == {"positive_text": ("6", "text"), "negative_text": ("7", "text")}

    def test_unmapped_fields(self):
        state = self._state().select_candidate("positive_text", -1)
        assert [f.key for f in state.unmapped_fields] == ["positive_text"]
        assert [f.key for f in state.missing_required_fields] == ["positive_text"]

    def test_dict_round_trip(self, wan_i2v_workflow):
        state = create_field_mapping_state(_graph(wan_i2v_workflow), WorkflowCategory.ITV_UNET)
        data = json.loads(json.dumps(state.to_dict()))
        assert WorkflowMappingState.from_dict(data) == state

    def test_from_dict_rejects_bad_category(self):
        with pytest.raises(ValueError):
            WorkflowMappingState.from_dict({"category": "NOPE", "field_mappings": []})

    def _sdxl_dict(self, sdxl_workflow):
        state = create_field_mapping_state(_graph(sdxl_workflow), WorkflowCategory.TTI_CHECKPOINT)
        return json.loads(json.dumps(state.to_dict()))

    def test_from_dict_rejects_dropped_required_key(self, sdxl_workflow):
        data = self._sdxl_dict(sdxl_workflow)
        data["field_mappings"] = [m for m in data["field_mappings"] if m["key"] != "positive_text"]
        with pytest.raises(ValueError, match="positive_text"):
            WorkflowMappingState.from_dict(data)

    def test_from_dict_ignores_client_required_flag(self, sdxl_workflow):
        data = self._sdxl_dict(sdxl_workflow)
        for mapping in data["field_mappings"]:
            if mapping["key"] == "positive_text":
                mapping["is_required"] = False
                mapping["selected_candidate_index"] = -1

        state = WorkflowMappingState.from_dict(data)
        assert state.get("positive_text").is_required is True
        assert [f.key for f in state.missing_required_fields] == ["positive_text"]

    def test_from_dict_rejects_foreign_key(self, sdxl_workflow):
        data = self._sdxl_dict(sdxl_workflow)
        data["field_mappings"].append({"key": "image", "candidates": [], "selected_candidate_index": -1})
        with pytest.raises(ValueError, match="image"):
            WorkflowMappingState.from_dict(data)
