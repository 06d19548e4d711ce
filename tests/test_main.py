"""Tests for the CLI and its output naming."""

import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import main
from utils.folder_naming import extract_project_name, get_output_dir, slugify

SUCCESS = {
    "success": True,
    "artifact": {
        "id": "abc", "title": "Solar Savings Calculator", "type": "calculator",
        "filename": "calculator.tsx", "sourceText": "export default function X() {}\n", "patches": [],
    },
    "stages": {"preprocess": {"stage": "preprocess", "used_fallback": False, "fallback_reason": "", "value": {}}},
}


def test_slugify():
    assert slugify("Solar Savings: Calculator!") == "solar_savings_calculator"


def test_extract_project_name_drops_filler():
    assert extract_project_name("Build me a solar savings calculator for homeowners") == "solar_savings_calculator"
    assert extract_project_name("make a tool") == "artifact"


def test_output_dir_dedup(tmp_path):
    first = get_output_dir("Solar Savings Calculator", base_dir=str(tmp_path))
    os.makedirs(first)
    second = get_output_dir("Solar Savings Calculator", base_dir=str(tmp_path))
    assert second == first + "_2"


def test_build_writes_artifact_and_stages(tmp_path):
    out = tmp_path / "out"
    orchestrator = MagicMock()
    orchestrator.execute = AsyncMock(return_value=SUCCESS)
    with patch("main.PipelineOrchestrator", return_value=orchestrator):
        code = main.main(["build", "--prompt", "solar savings calculator", "--output", str(out)])

    assert code == 0
    assert (out / "calculator.tsx").read_text() == SUCCESS["artifact"]["sourceText"]
    record = json.loads((out / "stages.json").read_text())
    assert record["title"] == "Solar Savings Calculator"
    assert "sourceText" not in record
    assert "preprocess" in record["stages"]


def test_build_failure_exit_code(capsys):
    orchestrator = MagicMock()
    orchestrator.execute = AsyncMock(return_value={
        "success": False, "error_kind": "TransientOverload", "failing_stage": "plan", "message": "busy",
    })
    with patch("main.PipelineOrchestrator", return_value=orchestrator):
        code = main.main(["build", "--prompt", "solar savings calculator"])

    assert code == 1
    err = capsys.readouterr().err
    assert "plan" in err and "TransientOverload" in err


def test_templates_command(capsys):
    assert main.main(["templates"]) == 0
    assert "calculator" in capsys.readouterr().out


def test_no_command_prints_help():
    assert main.main([]) == 1
