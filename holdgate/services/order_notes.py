from __future__ import annotations

HOLD_WARNING_MARKER = '⚠️ FULFILLMENT BLOCKED⚠️:'
HOLD_WARNING_TEXT = (
    HOLD_WARNING_MARKER
    + '\n\nThere is an important product note(s) attached to this order that must be acknowledged before '
    'shipping. Please view the order details below and acknowledge all product notes before fulfilling.'
)
NOTE_SEPARATOR = '\n\n---\n\n'


def prepend_note(existing: str | None, text: str, marker: str) -> str | None:
    """Return the new order note, or None when ``marker`` is already present."""
    existing = existing or ''
    if marker in existing:
        return None
    if existing.strip():
        return text + NOTE_SEPARATOR + existing
    return text


def strip_note(existing: str | None, marker: str) -> str | None:
    """Return the order note without sections starting with ``marker``, or None if unchanged."""
    existing = existing or ''
    if marker not in existing:
        return None
    kept = [section for section in existing.split(NOTE_SEPARATOR) if not section.startswith(marker)]
    return NOTE_SEPARATOR.join(kept)
