from __future__ import annotations

from datetime import datetime
from pathlib import Path
from uuid import uuid4


def generate_session_id() -> str:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    suffix = uuid4().hex[:8]
    return f"{stamp}-{suffix}"


def create_session_dir(base_dir: Path, session_id: str) -> Path:
    session_dir = base_dir / session_id
    session_dir.mkdir(parents=True, exist_ok=True)
    return session_dir


def events_path_for(base_dir: Path, session_id: str) -> Path:
    return base_dir / session_id / "events.jsonl"
