import uuid
from typing import Optional


def new_uuid() -> str:
    return str(uuid.uuid4())


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace, mapping empty strings to ``None``."""
    if value is None:
        return None
    value = value.strip()
    return value or None
