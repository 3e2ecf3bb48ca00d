from __future__ import annotations

from collections.abc import Iterable


def is_same_session(existing_session_ids: Iterable[str | None], caller_session_id: str | None) -> bool:
    """True when the caller is the viewing session that wrote the stored acknowledgments.

    Session ids are opaque client tokens compared by equality only. A caller
    without a session id never matches.
    """
    if not caller_session_id:
        return False
    return caller_session_id in {session_id for session_id in existing_session_ids if session_id}
