"""
File Extractor - reads content-type definitions from YAML or JSON files.

Layout::

    content-types/
      article.yaml            # one definition per file
      blocks.yml              # or a list under "content_types"
      marketing/              # website-specific definitions
        landing_page.json

Example YAML definition:

```yaml
key: article
category: page
display_name: Article
fields:
  - key: title
    type: string
    required: true
  - key: body
    type: richtext
```
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.exceptions import ValidationError
from ctsync.core.ports.extractor import ContentTypeExtractorPort


SUPPORTED_EXTENSIONS = (".yaml", ".yml", ".json")


class FileContentTypeExtractor(ContentTypeExtractorPort):
    """
    Extracts definitions from a source directory.

    Files directly under the directory are shared by every website; files in
    a ``<website_id>/`` subdirectory belong to that website only. Unreadable
    files raise ValidationError so a broken source never looks like a mass
    deletion.
    """

    def __init__(self, source_dir: str | Path):
        self.source_dir = Path(source_dir)
        self.logger = logging.getLogger("FileContentTypeExtractor")

    def extract_content_types(self, website_id: str | None = None) -> list[ContentTypeDefinition]:
        if not self.source_dir.is_dir():
            self.logger.warning(f"Source directory not found: {self.source_dir}")
            return []

        definitions: list[ContentTypeDefinition] = []
        for path in self._source_files(website_id):
            for raw in self._load(path):
                try:
                    definitions.append(ContentTypeDefinition.from_dict(raw))
                except ValidationError as e:
                    raise ValidationError(f"{path}: {e.message}", errors=e.errors, cause=e) from e

        self.logger.info(f"Extracted {len(definitions)} content types from {self.source_dir}")
        return definitions

    def _source_files(self, website_id: str | None) -> list[Path]:
        files = [p for p in sorted(self.source_dir.iterdir()) if self._supported(p)]
        if website_id is None:
            for sub in sorted(p for p in self.source_dir.iterdir() if p.is_dir()):
                files.extend(p for p in sorted(sub.iterdir()) if self._supported(p))
        else:
            site_dir = self.source_dir / website_id
            if site_dir.is_dir():
                files.extend(p for p in sorted(site_dir.iterdir()) if self._supported(p))
        return files

    @staticmethod
    def _supported(path: Path) -> bool:
        return path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS

    def _load(self, path: Path) -> list[dict[str, Any]]:
        content = path.read_text(encoding="utf-8")
        try:
            if path.suffix.lower() == ".json":
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValidationError(f"Invalid definition file {path}: {e}", cause=e) from e

        if data is None:
            return []
        if isinstance(data, dict) and "content_types" in data:
            data = data["content_types"] or []
        if isinstance(data, dict):
            return [data]
        if isinstance(data, list) and all(isinstance(item, dict) for item in data):
            return data
        raise ValidationError(f"{path}: expected a definition or a list of definitions")
