"""Project export / import as a self-describing JSON document.

Layout::

    {
      "format": "mdksys.project",
      "formatVersion": 1,
      "project": { "id": ..., "ioConfigs": [...], "taskConfigs": [...] }
    }

Field names inside ``project`` are the camelCase names of the model.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from mdksys.errors import ImportFormatError
from mdksys.model.project import ProjectConfig

FORMAT_NAME = "mdksys.project"
FORMAT_VERSION = 1


def to_document(project: ProjectConfig) -> dict[str, Any]:
    return {
        "format": FORMAT_NAME,
        "formatVersion": FORMAT_VERSION,
        "project": project.model_dump(mode="json", by_alias=True),
    }


def to_json(project: ProjectConfig, indent: int | None = 2) -> str:
    return json.dumps(to_document(project), indent=indent, ensure_ascii=False)


def from_document(data: Any) -> ProjectConfig:
    """Rebuild a project from :func:`to_document` output."""
    if not isinstance(data, dict):
        raise ImportFormatError(f"Expected a JSON object, got {type(data).__name__}")
    if data.get("format") != FORMAT_NAME:
        raise ImportFormatError(f"Not an mdksys project export: format={data.get('format')!r}")
    version = data.get("formatVersion")
    if version != FORMAT_VERSION:
        raise ImportFormatError(f"Unsupported export version {version!r}")
    try:
        return ProjectConfig.model_validate(data.get("project"))
    except PydanticValidationError as exc:
        raise ImportFormatError(f"Malformed project: {exc}") from exc


def from_json(text: str) -> ProjectConfig:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"Invalid JSON: {exc}") from exc
    return from_document(data)
