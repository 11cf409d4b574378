from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from gather.core.errors import ConfigError
from gather.core.models import CollectionProfile


def default_kubeconfig_path() -> str:
    """First entry of $KUBECONFIG, else ~/.kube/config."""
    raw = (os.getenv("KUBECONFIG") or "").strip()
    if raw:
        first = raw.split(os.pathsep)[0].strip()
        if first:
            return first
    return str(Path.home() / ".kube" / "config")


def parse_profile(data: Dict[str, Any], *, source: str = "<config>") -> CollectionProfile:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a mapping at the top level, got {type(data).__name__}")
    try:
        return CollectionProfile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{source}: invalid configuration: {e}") from e


def _spellings(key: str) -> Tuple[str, ...]:
    """Every accepted key for the profile field that `key` names (field name and alias)."""
    for name, info in CollectionProfile.model_fields.items():
        if key in (name, info.alias):
            return tuple(s for s in (name, info.alias) if s)
    return (key,)


def load_profile(path: Union[str, Path], *, overrides: Optional[Dict[str, Any]] = None) -> CollectionProfile:
    """
    Load the run profile from a JSON or YAML file.

    JSON documents are valid YAML, so both go through `yaml.safe_load`.
    `overrides` (e.g. from the CLI) replace keys from the file.
    """
    p = Path(path)
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"{p}: cannot read configuration file: {e}") from e
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"{p}: cannot parse configuration file: {e}") from e
    if data is None:
        raise ConfigError(f"{p}: configuration file is empty")
    if overrides and isinstance(data, dict):
        data = dict(data)
        for key, value in overrides.items():
            if value is None:
                continue
            # The file may spell the field by name or by alias; only the override may remain.
            for spelling in _spellings(key):
                data.pop(spelling, None)
            data[key] = value
    return parse_profile(data, source=str(p))
