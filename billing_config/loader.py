"""
YAML -> BillingConfig.

A configuration file is either a bare mapping of BillingConfig fields or a
document with those fields under a top-level ``billing:`` key.  Unknown
keys are an error so that a misspelt setting never silently falls back to
its default.  The checksum identifies the exact document that was loaded
and is logged by ``get_active_config``.

Errors:
    FileNotFoundError  -- the file does not exist
    yaml.YAMLError     -- the file is not valid YAML
    ValueError         -- wrong shape, unknown keys, or invalid values
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import BillingConfig

_FIELD_NAMES = frozenset(f.name for f in fields(BillingConfig))

# Values YAML may legitimately parse as non-strings
_TEXT_FIELDS = ("config_id", "bill_number_prefix", "timezone")


def read_document(path: Path) -> dict[str, Any]:
    """safe_load ``path``; an empty file is an empty mapping."""
    text = Path(path).read_text(encoding="utf-8")
    document = yaml.safe_load(text)
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return document


def parse_config(document: dict[str, Any]) -> BillingConfig:
    section = document.get("billing", document)
    if not isinstance(section, dict):
        raise ValueError("billing section must be a mapping")
    unknown = sorted(set(section) - _FIELD_NAMES)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    values = dict(section)
    for name in _TEXT_FIELDS:
        if name in values and values[name] is not None:
            values[name] = str(values[name])
    if "currency" in values:
        values["currency"] = str(values["currency"]).strip().upper()
    return BillingConfig(**values)


def compute_checksum(document: dict[str, Any]) -> str:
    """Hex SHA-256 of the document as key-sorted JSON."""
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_config(path: Path) -> tuple[BillingConfig, str]:
    """Returns ``(config, checksum)``."""
    document = read_document(path)
    return parse_config(document), compute_checksum(document)
