import html
from typing import Optional


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Sanitize a string by escaping HTML special characters to prevent XSS.
    Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    return html.escape(str(value), quote=True)


def sanitize_text(value: Optional[str], max_length: int = 1000) -> Optional[str]:
    """Trim, cap length and escape free text (notes, reasons). Blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    return sanitize_string(value[:max_length])
