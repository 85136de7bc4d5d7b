"""
Filesystem sink for generated applications.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

def slugify(name: str) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", name).strip("-").lower()
    return slug or "generated-app"

class FileSink:
    """Writes generated artifacts below ``base_dir``, one folder per app."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def create_app_folder(self, project_name: str) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        app_path = self.base_dir / f"{slugify(project_name)}-{timestamp}"
        app_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created app folder {app_path}")
        return app_path

    def _target(self, app_path: Path, relative: str) -> Path:
        target = (app_path / relative).resolve()
        if not target.is_relative_to(app_path.resolve()):
            raise ValueError(f"Refusing to write outside the app folder: {relative}")
        return target

    def write_file(self, app_path: Path, relative: str, content: str) -> Path:
        target = self._target(app_path, relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        logger.debug(f"Wrote {relative}")
        return target

    def write_files(self, app_path: Path, files: Dict[str, str]) -> int:
        for relative, content in files.items():
            self.write_file(app_path, relative, content)
        logger.info(f"Saved {len(files)} files to {app_path}")
        return len(files)

    def write_json(self, app_path: Path, relative: str, data: Any) -> Path:
        return self.write_file(app_path, relative, json.dumps(data, indent=2))
