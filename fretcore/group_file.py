"""
Loading of YAML group-definition files.

A group file names a storage namespace (one quiz mode) and partitions its
items into groups for the recommendation engine:

    namespace: fretboard
    groups:
      - index: 0
        label: "Low E string"
        items: ["0-0", "0-1", "0-2"]
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict, Field, ValidationError, field_validator

from .models import GroupDef

logger = logging.getLogger(__name__)


class GroupFileError(Exception):
    """Raised when a group file cannot be read or fails validation."""

    def __init__(self, file_path: Path, message: str):
        self.file_path = file_path
        self.message = message
        super().__init__(f"{file_path}: {message}")


class _RawGroup(PydanticBaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int = Field(..., ge=0)
    label: Optional[str] = None
    items: List[str] = Field(..., min_length=1)


class _RawGroupFile(PydanticBaseModel):
    model_config = ConfigDict(extra="forbid")

    namespace: str = Field(..., min_length=1)
    groups: List[_RawGroup] = Field(..., min_length=1)

    @field_validator("groups")
    @classmethod
    def check_unique_indices(cls, groups: List[_RawGroup]) -> List[_RawGroup]:
        indices = [g.index for g in groups]
        duplicates = sorted({i for i in indices if indices.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate group indices: {duplicates}")
        return groups


@dataclass
class GroupFile:
    namespace: str
    groups: List[GroupDef]
    source_path: Optional[Path] = None

    @property
    def all_item_ids(self) -> List[str]:
        """Every item id across groups, first occurrence order."""
        return list(
            dict.fromkeys(i for g in self.groups for i in g.item_ids)
        )


def load_group_file(file_path: Path) -> GroupFile:
    """
    Read and validate a group-definition file.

    Parameters:
        file_path (Path): YAML file to load.

    Returns:
        GroupFile: The namespace and its groups, sorted by index.

    Raises:
        GroupFileError: If the file is missing or unreadable, is not valid
            YAML, is not a mapping at the top level, or fails schema
            validation (the message names the offending field).
    """
    try:
        content = file_path.read_text(encoding="utf-8")
        raw = yaml.safe_load(content)
    except FileNotFoundError:
        raise GroupFileError(file_path, "File not found.") from None
    except OSError as e:
        raise GroupFileError(file_path, f"Could not read file: {e}") from e
    except yaml.YAMLError as e:
        raise GroupFileError(file_path, f"Invalid YAML syntax: {e}") from e

    if not isinstance(raw, dict):
        raise GroupFileError(
            file_path, "Top level of YAML must be a dictionary."
        )

    try:
        parsed = _RawGroupFile.model_validate(raw)
        groups = [
            GroupDef(index=g.index, item_ids=g.items, label=g.label)
            for g in sorted(parsed.groups, key=lambda g: g.index)
        ]
    except ValidationError as e:
        error_details = e.errors()[0]
        field = ".".join(map(str, error_details["loc"]))
        msg = error_details["msg"]
        raise GroupFileError(
            file_path, f"Validation error in field '{field}': {msg}"
        ) from e

    logger.info(
        f"Loaded {len(groups)} groups for namespace '{parsed.namespace}' from {file_path}"
    )
    return GroupFile(
        namespace=parsed.namespace, groups=groups, source_path=file_path
    )
