from __future__ import annotations

from typing import Any, Dict, List

import yaml

from cloudkube.errors import ValidationError


def to_yaml_text(value: Any) -> str:
    return yaml.safe_dump(value, sort_keys=False, allow_unicode=True)


def parse_yaml_documents(text: str) -> List[Any]:
    """Split a multi-document YAML stream; empty documents are dropped."""

    try:
        return [doc for doc in yaml.safe_load_all(text or "") if doc is not None]
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML: {exc}", field="yaml") from exc


def to_plain(api_client: Any, obj: Any) -> Dict[str, Any]:
    """Convert a kubernetes model object into camelCase JSON-compatible data."""
    return api_client.sanitize_for_serialization(obj)
