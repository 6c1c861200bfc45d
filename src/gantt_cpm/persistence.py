"""JSON file persistence for the activity outline and project config."""

from __future__ import annotations

import json
import os
from pathlib import Path

from gantt_cpm.exceptions import StoreError
from gantt_cpm.models import Activity, ProjectConfig

DEFAULT_DB_FILE = "schedule.json"
DB_ENV_VAR = "GANTT_CPM_DB"


class Store:
    """Reads and writes the project file.

    Layout: ``{"config": {...}, "activities": [...]}``. The activity list
    is stored in outline (WBS) order.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path or os.environ.get(DB_ENV_VAR) or DEFAULT_DB_FILE)

    def load(self) -> tuple[ProjectConfig | None, list[Activity]]:
        """Return (config_or_None, activities)."""
        if not self.db_path.exists():
            return None, []

        try:
            raw = json.loads(self.db_path.read_text())
            config = ProjectConfig.from_dict(raw["config"]) if raw.get("config") else None
            activities = [Activity.from_dict(a) for a in raw.get("activities", [])]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Cannot read {self.db_path}: {e}") from e
        return config, activities

    def save(self, config: ProjectConfig | None, activities: list[Activity]) -> None:
        """Persist config + activities to disk."""
        raw: dict = {}
        if config is not None:
            raw["config"] = config.to_dict()
        raw["activities"] = [a.to_dict() for a in activities]
        self.db_path.write_text(json.dumps(raw, indent=4))

    def generate_id(self, activities: list[Activity]) -> str:
        """Generate the next A-N id."""
        existing = [
            int(a.id.split("-")[1])
            for a in activities
            if a.id.startswith("A-") and a.id.split("-")[1].isdigit()
        ]
        next_num = max(existing, default=0) + 1
        return f"A-{next_num}"
