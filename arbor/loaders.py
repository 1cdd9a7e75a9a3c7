"""File loaders for Arbor.

A loader turns a file into a data mapping. Page and asset loaders put the
body of the file under the ``content`` key; data loaders return the parsed
document itself.

Key functions:
- extract_frontmatter: Split YAML frontmatter from a text body.
- load_yaml / load_json: Data file loaders.
- load_text: Text pages with optional frontmatter.
- load_binary: Binary assets.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import yaml

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content).

    Raises:
        yaml.YAMLError: If the frontmatter block is not valid YAML.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    data = yaml.safe_load(match.group(1)) or {}
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def _as_mapping(payload: Any, name: str) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return payload
    # Lists and scalars are exposed under the file's name
    return {name: payload}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML data file.

    Args:
        path: Path to the YAML file.

    Returns:
        The parsed mapping. A non-mapping document is stored under the
        file stem.
    """
    with open(path, encoding="utf-8") as f:
        payload = yaml.safe_load(f)
    return _as_mapping(payload, path.stem)


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON data file."""
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    return _as_mapping(payload, path.stem)


def load_text(path: Path) -> dict[str, Any]:
    """Load a text page, splitting its YAML frontmatter.

    Args:
        path: Path to the source file.

    Returns:
        Frontmatter values plus the remaining body under ``content``.
    """
    text = path.read_text(encoding="utf-8")
    data, body = extract_frontmatter(text)
    data = dict(data)
    data["content"] = body
    return data


def load_raw_text(path: Path) -> dict[str, Any]:
    """Load a text asset verbatim, without frontmatter parsing."""
    return {"content": path.read_text(encoding="utf-8")}


def load_binary(path: Path) -> dict[str, Any]:
    """Load a binary asset."""
    return {"content": path.read_bytes()}
