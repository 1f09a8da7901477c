"""
Dispatch token allocation.

Tokens are a pure function of (reminder id, index) or (reminder id, suffix),
so cancelling by recomputation needs no side table. Python's built-in hash()
is salted per process, so a digest is used to keep tokens identical across
the API process and every worker.
"""
import hashlib

SEPARATOR = "#"
TOKEN_MODULUS = 2 ** 31
TAG_PREFIX = "reminder_"
SNOOZE_SUFFIX = "snooze"


def _stable_hash(value: str) -> int:
    digest = hashlib.blake2b(value.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


class IdentifierAllocator:
    """Maps reminder occurrences to non-negative 31-bit dispatch tokens.

    Different reminders may collide; cancellation is best effort and may
    over-cancel an unrelated token in that case.
    """

    @staticmethod
    def token(reminder_id: str, index: int) -> int:
        return _stable_hash(f"{reminder_id}{SEPARATOR}{index}") % TOKEN_MODULUS

    @staticmethod
    def token_for_variant(reminder_id: str, suffix: str) -> int:
        return _stable_hash(f"{reminder_id}{SEPARATOR}{suffix}") % TOKEN_MODULUS

    @staticmethod
    def tag(reminder_id: str) -> str:
        """Backup-channel tag grouping every submission of a reminder"""
        return f"{TAG_PREFIX}{reminder_id}"
