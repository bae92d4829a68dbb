# src/asvflow/config/io.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .schema import Params


def _read_mapping(path: Path) -> Dict[str, Any]:
    # safe_load also accepts JSON documents
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Params file must contain a mapping at the top level.")
    return data


def load_params_raw(path: Path) -> Dict[str, Any]:
    data = _read_mapping(path)
    inner = data.get("params", data)
    if not isinstance(inner, dict):
        raise ValueError("'params' must be a mapping.")
    return inner


def load_params(path: Optional[Path], **overrides: Any) -> Params:
    """Build the frozen Params from an optional file plus explicit overrides (overrides win)."""
    data: Dict[str, Any] = load_params_raw(path) if path else {}
    data.update({k: v for k, v in overrides.items() if v is not None})
    return Params(**data)


def write_params(path: Path, params: Params) -> None:
    payload = {"params": params.model_dump(mode="json")}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")

