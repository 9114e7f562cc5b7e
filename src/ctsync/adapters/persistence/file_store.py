"""
File Definition Store - JSON copy of each local definition as of the last
successful run, one file per type key.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from ctsync.core.domain.definitions import ContentTypeDefinition
from ctsync.core.exceptions import ValidationError
from ctsync.core.ports.persistence import DefinitionStorePort


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class FileDefinitionStore(DefinitionStorePort):
    """Stores definitions under ``<directory>/<key>.json``."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.logger = logging.getLogger("FileDefinitionStore")

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def load_all_definitions(self) -> list[ContentTypeDefinition]:
        if not self.directory.is_dir():
            return []

        definitions = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                definitions.append(ContentTypeDefinition.from_dict(data))
            except (json.JSONDecodeError, ValidationError) as e:
                self.logger.warning(f"Ignoring unreadable stored definition {path.name}: {e}")
        return definitions

    def save_definition(self, definition: ContentTypeDefinition) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(definition.key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(definition.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, path)

    def delete_definition(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True
