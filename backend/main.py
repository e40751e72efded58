from __future__ import annotations

import logging
from pathlib import Path

import uvicorn

from .api import create_app
from .config_loader import load_settings, read_config
from .db import Database

ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = ROOT / "configs" / "default.yaml"

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

raw_cfg = read_config(str(CONFIG_PATH))
settings = load_settings(str(CONFIG_PATH))
db_path = raw_cfg.get("storage", {}).get("database_path", "artifacts/focus_guard.db")
DB_PATH = ROOT / db_path
DB_PATH.parent.mkdir(parents=True, exist_ok=True)
database = Database(str(DB_PATH))

app = create_app(settings, database, config_path=str(CONFIG_PATH))


if __name__ == "__main__":
    uvicorn.run("backend.main:app", host="0.0.0.0", port=8000, reload=True)
