"""Content fingerprints for change detection between runs.

The fingerprint is a 32-bit signed polynomial rolling hash over the UTF-16
code units of the text (``h = h * 31 + code``, wrapped at every step),
rendered as a decimal string. Not cryptographic.
"""

from __future__ import annotations

import struct

from digest_indexer.core.models import ChangeAction, ChangeDecision

EMPTY_FINGERPRINT = "0"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def compute_fingerprint(text: str) -> str:
    if not text:
        return EMPTY_FINGERPRINT

    h = 0
    for (code,) in struct.iter_unpack("<H", text.encode("utf-16-le")):
        h = _to_int32((h << 5) - h + code)
    return str(h)


def detect_change(text: str, stored_fingerprint: str | None) -> ChangeDecision:
    """Decide whether a thread needs re-embedding.

    The caller stores ``decision.fingerprint`` only after the thread has been
    successfully upserted.
    """
    fingerprint = compute_fingerprint(text)
    if stored_fingerprint is not None and fingerprint == str(stored_fingerprint):
        return ChangeDecision(action=ChangeAction.SKIP, fingerprint=fingerprint)
    return ChangeDecision(action=ChangeAction.PROCESS, fingerprint=fingerprint)
