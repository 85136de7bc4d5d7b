"""
Parsing of provider responses into architecture and files.
"""

import json
import re
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel

from generator.src.errors import MalformedOutputError

FENCED_BLOCK = re.compile(r"```([\w+-]*)[ \t]*\n(.*?)```", re.DOTALL)
PATH_MARKERS = [
    re.compile(r"^\s*//\s*(\S+)\s*$"),
    re.compile(r"^\s*#\s*(\S+)\s*$"),
    re.compile(r"^\s*/\*\s*(\S+)\s*\*/\s*$"),
    re.compile(r"^\s*<!--\s*(\S+)\s*-->\s*$"),
]
PATH_LIKE = re.compile(r"^[\w@.\-\[\]()]+(/[\w@.\-\[\]()]+)*\.\w+$")

class Architecture(BaseModel):
    project_name: str
    domain: str = "general"
    pages: List[Dict[str, Any]] = []
    raw: Dict[str, Any] = {}

def extract_project_name(prompt: str) -> str:
    """PascalCase of the first three words of the prompt."""
    words = prompt.split()[:3]
    name = "".join(w[:1].upper() + w[1:].lower() for w in words)
    name = re.sub(r"[^a-zA-Z0-9]", "", name)
    return name or "GeneratedApp"

def _strip_fence(text: str) -> str:
    match = FENCED_BLOCK.search(text)
    return match.group(2) if match else text

def parse_architecture(text: str) -> Architecture:
    try:
        data = yaml.safe_load(_strip_fence(text))
    except yaml.YAMLError as e:
        raise MalformedOutputError(f"Architecture is not valid YAML: {e}")

    if not isinstance(data, dict):
        raise MalformedOutputError("Architecture must be a YAML mapping")

    metadata = data.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise MalformedOutputError("Architecture is missing 'metadata.name'")

    pages = []
    structure = data.get("pages_structure") or {}
    if isinstance(structure, dict):
        for group in structure.values():
            if isinstance(group, list):
                pages.extend(p for p in group if isinstance(p, dict))

    return Architecture(
        project_name=str(metadata["name"]),
        domain=str(metadata.get("domain") or "general"),
        pages=pages,
        raw=data,
    )

def _path_from_first_line(body: str):
    first_line, _, rest = body.partition("\n")
    for marker in PATH_MARKERS:
        match = marker.match(first_line)
        if match:
            path = match.group(1)
            if path.startswith("./"):
                path = path[2:]
            if PATH_LIKE.match(path):
                return path, rest
    return None, body

def _looks_like_package_json(lang: str, body: str) -> bool:
    if lang != "json":
        return False
    try:
        data = json.loads(body)
    except ValueError:
        return False
    return isinstance(data, dict) and "name" in data and (
        "dependencies" in data or "scripts" in data
    )

def parse_code_files(text: str) -> Dict[str, str]:
    """Collect fenced code blocks whose first line names the target path."""
    files = {}
    for match in FENCED_BLOCK.finditer(text):
        lang, body = match.group(1).lower(), match.group(2)
        path, content = _path_from_first_line(body)

        if path is None and _looks_like_package_json(lang, body):
            path, content = "package.json", body

        if path is None:
            continue
        files[path] = content.strip("\n") + "\n"

    if not files:
        raise MalformedOutputError("No files found in code generation output")
    return files

def has_balanced_delimiters(content: str) -> bool:
    return (
        content.count("{") == content.count("}")
        and content.count("(") == content.count(")")
    )
