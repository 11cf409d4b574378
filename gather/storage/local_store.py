"""Staging tree on the local filesystem and the per-task output writer."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

from gather.core.errors import CollectionError, StagingError, WriteError
from gather.core.models import Category

STAGING_PREFIX = "info"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def staging_name(context: str, now: datetime) -> str:
    return f"{STAGING_PREFIX}_{context}_{now.strftime(TIMESTAMP_FORMAT)}"


def safe_filename(name: str) -> str:
    return name.replace(os.sep, "_").replace("/", "_")


def write_output(
    folder: Union[str, Path],
    data: bytes,
    filename: str,
    error: Optional[CollectionError] = None,
) -> Path:
    """
    Append `data` to `folder/filename`, creating the file if needed.

    Empty `data` never produces a file: the caller-supplied `error` (or a generic
    one) is raised instead. Existing content is never truncated.
    """
    path = Path(folder) / safe_filename(filename)
    if not data:
        raise error or CollectionError(f"no data to write to {path}")
    try:
        with open(path, "ab") as f:
            f.write(data)
    except OSError as e:
        raise WriteError(f"writing {path} failed: {e}") from e
    return path


@dataclass(frozen=True)
class StagingTree:
    """`<output_root>/info_<context>_<timestamp>/{pods,infra,helm,apps}` for one run."""

    root: str

    @classmethod
    def create(cls, output_root: str, context: str, now: datetime) -> "StagingTree":
        base = os.path.abspath(output_root or os.getcwd())
        tree = cls(root=os.path.join(base, staging_name(context, now)))
        for category in Category:
            folder = tree.folder(category)
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StagingError(f"cannot create staging directory {folder}: {e}") from e
        return tree

    @property
    def name(self) -> str:
        return os.path.basename(self.root)

    @property
    def archive_path(self) -> str:
        return self.root + ".tar.gz"

    def folder(self, category: Category) -> Path:
        return Path(self.root) / category.value

    def folders(self) -> Dict[Category, Path]:
        return {c: self.folder(c) for c in Category}

    def write(self, category: Category, filename: str, data: bytes, error: Optional[CollectionError] = None) -> Path:
        return write_output(self.folder(category), data, filename, error)
