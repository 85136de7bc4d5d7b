"""Tests for step configuration parser."""

import pytest
from generator.src.services.step_config import (
    parse_steps_config,
    parse_steps_dict,
    load_steps_config,
    StepConfigError,
)

def test_valid_config():
    config = """
steps:
  - name: architecture_generation
    timeout: 90
    max_retries: 2
  - name: code_generation
    timeout: 300
"""
    result = parse_steps_config(config)
    assert set(result) == {"architecture_generation", "code_generation"}
    assert result["architecture_generation"]["timeout"] == 90.0
    assert result["architecture_generation"]["max_retries"] == 2
    assert "max_retries" not in result["code_generation"]

def test_missing_steps():
    with pytest.raises(StepConfigError, match="must have 'steps'"):
        parse_steps_config("name: nothing here")

def test_missing_step_name():
    config = """
steps:
  - timeout: 30
"""
    with pytest.raises(StepConfigError, match="missing 'name'"):
        parse_steps_config(config)

def test_non_positive_timeout():
    config = """
steps:
  - name: validation
    timeout: 0
"""
    with pytest.raises(StepConfigError, match="'timeout' must be a positive number"):
        parse_steps_config(config)

def test_zero_retries_rejected():
    with pytest.raises(StepConfigError, match="max_retries"):
        parse_steps_dict({"steps": [{"name": "validation", "max_retries": 0}]})

def test_duplicate_names():
    with pytest.raises(StepConfigError, match="duplicates"):
        parse_steps_dict({"steps": [{"name": "a"}, {"name": "a"}]})

def test_empty_config():
    with pytest.raises(StepConfigError, match="Empty"):
        parse_steps_config("")

def test_invalid_yaml():
    with pytest.raises(StepConfigError, match="Invalid YAML"):
        parse_steps_config("steps: [unclosed")

def test_load_without_path():
    assert load_steps_config(None) == {}

def test_load_from_file(tmp_path):
    path = tmp_path / "steps.yml"
    path.write_text("steps:\n  - name: file_creation\n    max_retries: 1\n")
    assert load_steps_config(str(path)) == {
        "file_creation": {"name": "file_creation", "max_retries": 1}
    }
