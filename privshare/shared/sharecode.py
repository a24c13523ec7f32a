# privshare/shared/sharecode.py
"""
Share codes: the human-shareable locator handed to a recipient.

Format: privshare://xxxx-xxxx-xxxx-xxxx
Everything after the scheme prefix is the lookup key into the record store.
Older 5x4 codes and longer group counts are accepted by validate().
"""

import re
import secrets
from typing import Optional

from privshare.config import (
    SHARE_CODE_ALPHABET,
    SHARE_CODE_GROUP,
    SHARE_CODE_LENGTH,
    SHARE_CODE_PREFIX,
)

_SHARE_CODE_RE = re.compile(re.escape(SHARE_CODE_PREFIX) + r"[a-z0-9]+(-[a-z0-9]+)*")

SHARE_TEXT_INTRO = "I shared a file with you via PrivShare"


def generate() -> str:
    """Mint a new share code from 16 random lowercase-alphanumeric characters."""
    raw = "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(SHARE_CODE_LENGTH))
    groups = [raw[i:i + SHARE_CODE_GROUP] for i in range(0, len(raw), SHARE_CODE_GROUP)]
    return SHARE_CODE_PREFIX + "-".join(groups)


def validate(candidate: str) -> bool:
    if not isinstance(candidate, str):
        return False
    return _SHARE_CODE_RE.fullmatch(candidate) is not None


def extract_key(candidate: str) -> str:
    """Strip the scheme prefix. Callers must validate() first."""
    return candidate.replace(SHARE_CODE_PREFIX, "", 1)


def format_share_text(share_code: str, key: Optional[str] = None) -> str:
    """Text the uploader sends to the recipient."""
    text = f"{SHARE_TEXT_INTRO}, share code: {share_code}"
    if key:
        text += f", key: {key}"
    return text
