"""Conversion between YAML manifests and kubernetes client models."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from kubernetes import client


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a single YAML document as a mapping.

    Raises:
        ValueError: If the document is not a mapping.
    """
    with Path(path).open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        msg = f"{path}: expected a YAML mapping"
        raise ValueError(msg)
    return data


def to_model(obj: dict[str, Any], model: str) -> Any:
    """Deserialize a manifest into a client model such as ``V1Pod``."""
    return client.ApiClient().deserialize(json.dumps(obj), model, "application/json")


def to_manifest(model: Any) -> dict[str, Any]:
    """Serialize a client model back into camelCase manifest form."""
    return client.ApiClient().sanitize_for_serialization(model)


def dump_yaml(model: Any) -> str:
    return yaml.safe_dump(to_manifest(model), sort_keys=False)
