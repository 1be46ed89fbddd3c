import uuid
from datetime import datetime, timezone
from typing import Any, Optional

def new_id() -> str:
    return str(uuid.uuid4())

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def is_valid_id(value: Any) -> bool:
    """True when value parses as a UUID."""
    try:
        uuid.UUID(str(value))
        return True
    except (ValueError, TypeError, AttributeError):
        return False

def offering_ref_id(item: Any) -> Optional[str]:
    """
    Normalize an offering reference to its id string.

    Workflow payloads may hold either a bare id or an embedded offering
    snapshot; both resolve to the same id here.
    """
    if item is None:
        return None
    if isinstance(item, dict):
        ref = item.get("id", item.get("_id"))
        return str(ref) if ref is not None else None
    return str(item)

def truncate(text: str, length: int = 50) -> str:
    return text[:length] + ("..." if len(text) > length else "")
