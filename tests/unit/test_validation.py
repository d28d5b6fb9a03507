"""Unit tests for request models and settings validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pageflow.flow import (
    MissingSettingsError,
    ProcessFlowRequest,
    SettingsValidator,
    Stage,
)


# ---------------------------------------------------------------------------
# TestSettingsValidator
# ---------------------------------------------------------------------------


class TestSettingsValidator:
    """Tests for SettingsValidator."""

    def test_tolerates_missing_inputs(self) -> None:
        validator = SettingsValidator()

        validator.validate(None, None)
        validator.validate(set(), {})

    def test_passes_when_every_stage_has_settings(self) -> None:
        SettingsValidator().validate(
            {Stage.PREPROCESSING, Stage.SEGMENTATION},
            {Stage.PREPROCESSING: {}, Stage.SEGMENTATION: {"replace": "true"}},
        )

    def test_extra_settings_are_ignored(self) -> None:
        SettingsValidator().validate(
            {Stage.PREPROCESSING},
            {Stage.PREPROCESSING: {}, Stage.RECOGNITION: {}},
        )

    def test_settings_content_is_not_inspected(self) -> None:
        SettingsValidator().validate(
            {Stage.DESPECKLING},
            {Stage.DESPECKLING: {"maxContourRemovalSize": "not a number"}},
        )

    def test_reports_first_missing_in_canonical_order(self) -> None:
        with pytest.raises(MissingSettingsError) as exc_info:
            SettingsValidator().validate(
                {Stage.RECOGNITION, Stage.DESPECKLING},
                None,
            )

        assert exc_info.value.stage is Stage.DESPECKLING
        assert exc_info.value.status_code == 533
        assert exc_info.value.missing == [Stage.DESPECKLING, Stage.RECOGNITION]

    def test_none_entry_is_missing(self) -> None:
        with pytest.raises(MissingSettingsError):
            SettingsValidator().validate(
                {Stage.SEGMENTATION},
                {Stage.SEGMENTATION: None},
            )

    def test_missing_lists_all_offenders(self) -> None:
        missing = SettingsValidator().missing(
            {Stage.RECOGNITION, Stage.PREPROCESSING, Stage.SEGMENTATION},
            {Stage.SEGMENTATION: {}},
        )

        assert missing == [Stage.PREPROCESSING, Stage.RECOGNITION]


# ---------------------------------------------------------------------------
# TestProcessFlowRequest
# ---------------------------------------------------------------------------


class TestProcessFlowRequest:
    """Tests for parsing the request body."""

    def test_parses_wire_names(self) -> None:
        request = ProcessFlowRequest.model_validate(
            {
                "pageIds": ["0001", "0002"],
                "processesToExecute": ["lineSegmentation", "preprocessing"],
                "processSettings": {
                    "preprocessing": {"cmdArgs": ["--threshold", "0.5"]},
                    "lineSegmentation": {"cmdArgs": []},
                },
            }
        )

        assert request.page_ids == ["0001", "0002"]
        assert request.processes_to_execute == {
            Stage.LINE_SEGMENTATION,
            Stage.PREPROCESSING,
        }
        assert request.process_settings is not None
        assert request.process_settings[Stage.PREPROCESSING] == {
            "cmdArgs": ["--threshold", "0.5"]
        }

    def test_absent_fields_are_none(self) -> None:
        request = ProcessFlowRequest.model_validate({})

        assert request.page_ids is None
        assert request.processes_to_execute is None
        assert request.process_settings is None

    def test_unknown_stage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProcessFlowRequest.model_validate(
                {"processesToExecute": ["binarization"]},
            )

    def test_unknown_stage_in_settings_ignored(self) -> None:
        request = ProcessFlowRequest.model_validate(
            {"processSettings": {"binarization": {}, "recognition": {}}},
        )

        assert request.process_settings == {Stage.RECOGNITION: {}}

    def test_malformed_settings_map_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProcessFlowRequest.model_validate({"processSettings": ["recognition"]})

    def test_duplicate_page_ids_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicates"):
            ProcessFlowRequest.model_validate({"pageIds": ["0001", "0001"]})

    def test_empty_page_ids_allowed(self) -> None:
        request = ProcessFlowRequest.model_validate({"pageIds": []})

        assert request.page_ids == []
