"""Daily digest classification."""

from __future__ import annotations

from digest_indexer.core.models import ThreadRecord

DEFAULT_TARGET_ADDRESS = "logan.lorenz@offlinestudio.com"
DEFAULT_SUBJECT_PREFIX = "Mula Daily Digest"


def is_daily_digest(
    record: ThreadRecord | None,
    target_address: str = DEFAULT_TARGET_ADDRESS,
    subject_prefix: str = DEFAULT_SUBJECT_PREFIX,
) -> bool:
    """True if the thread involves the target address and its subject starts with the prefix.

    Records without participants or without a subject are never digests.
    """
    participants = getattr(record, "participant_emails", None)
    subject = getattr(record, "subject", None)
    if not participants or not subject or not isinstance(subject, str):
        return False
    return target_address in participants and subject.startswith(subject_prefix)
