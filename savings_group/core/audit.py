"""Append-only audit trail of administrative and lifecycle actions."""
from datetime import datetime
from pathlib import Path

from savings_group.core.config import LOGS_DIR


def _audit_file(now: datetime) -> Path:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    return LOGS_DIR / f"audit_{now.strftime('%Y_%m')}.log"


def write_audit_log(
    group_id,
    actor_id,
    actor_role: str,
    action: str,
    entity_type: str,
    entity_id,
    **meta
):
    """Write one pipe-separated audit line; ``meta`` is rendered as key=value pairs."""
    now = datetime.now()
    details = " ".join(f"{key}={value}" for key, value in sorted(meta.items()))
    line = (
        f"{now.strftime('%Y-%m-%d %H:%M:%S')} | {group_id} | {actor_role} | {actor_id or 'system'} | "
        f"{action} | {entity_type}:{entity_id} | {details}\n"
    )
    with open(_audit_file(now), "a", encoding="utf-8") as f:
        f.write(line)
