"""JSON export of operation results.

Why JSON:
- Lets scripts and the future HTTP route layer consume the same payloads the
  CLI renders.
- The discriminated `status` field survives the round trip, so consumers can
  dispatch on it.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel


def render_json(model: BaseModel) -> str:
    """Serialize a result model to stable, pretty-printed JSON."""

    payload = model.model_dump(mode="json")
    return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)


def export_json(*, model: BaseModel, output_path: Path) -> Path:
    """Write `model` to `output_path` as UTF-8 JSON."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_json(model) + "\n", encoding="utf-8")
    return output_path
