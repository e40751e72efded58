from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from focus.config import FocusSettings


def read_config(path: str) -> Dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        return {}
    with cfg_path.open("r") as fh:
        return yaml.safe_load(fh) or {}


def load_settings(path: str) -> FocusSettings:
    return FocusSettings.from_dict(read_config(path))


def persist_settings(path: str, payload: Dict[str, Any]) -> None:
    cfg_path = Path(path)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    data = read_config(path)
    data.update(payload)
    with cfg_path.open("w") as fh:
        yaml.safe_dump(data, fh)
