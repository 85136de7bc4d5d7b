"""
Step configuration YAML parser and validator.

Operators can override the timeout and retry budget of individual pipeline
steps with a YAML file:

    steps:
      - name: code_generation
        timeout: 300
        max_retries: 2
"""

import yaml
from typing import Any, Dict, Optional

class StepConfigError(Exception):
    """Raised when step configuration is invalid."""
    pass

def parse_steps_config(yaml_content: str) -> Dict[str, Dict[str, Any]]:
    """Parse step configuration YAML from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise StepConfigError(f"Invalid YAML: {e}")

    return validate_config(config)

def parse_steps_dict(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Validate step configuration from dict."""
    return validate_config(config)

def load_steps_config(path: Optional[str]) -> Dict[str, Dict[str, Any]]:
    """Read overrides from ``path``. No path means no overrides."""
    if not path:
        return {}

    try:
        with open(path, "r") as f:
            return parse_steps_config(f.read())
    except OSError as e:
        raise StepConfigError(f"Cannot read step configuration {path}: {e}")

def validate_config(config: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Validate step configuration structure, keyed by step name."""
    if not config:
        raise StepConfigError("Empty step configuration")

    if not isinstance(config, dict):
        raise StepConfigError("Step configuration must be a dictionary")

    if "steps" not in config:
        raise StepConfigError("Step configuration must have 'steps' defined")

    steps = config["steps"]
    if not isinstance(steps, list):
        raise StepConfigError("'steps' must be a list")

    validated = {}
    for i, step in enumerate(steps):
        validated_step = validate_step(step, i)
        if validated_step["name"] in validated:
            raise StepConfigError(f"Step {i} duplicates name '{validated_step['name']}'")
        validated[validated_step["name"]] = validated_step

    return validated

def validate_step(step: Dict[str, Any], index: int) -> Dict[str, Any]:
    """Validate a single step override."""
    if not isinstance(step, dict):
        raise StepConfigError(f"Step {index} must be a dictionary")

    if "name" not in step:
        raise StepConfigError(f"Step {index} missing 'name'")

    if not isinstance(step["name"], str):
        raise StepConfigError(f"Step {index} 'name' must be a string")

    validated = {"name": step["name"]}

    if "timeout" in step:
        timeout = step["timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise StepConfigError(f"Step {index} 'timeout' must be a positive number")
        validated["timeout"] = float(timeout)

    if "max_retries" in step:
        max_retries = step["max_retries"]
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 1:
            raise StepConfigError(f"Step {index} 'max_retries' must be an integer >= 1")
        validated["max_retries"] = max_retries

    return validated
