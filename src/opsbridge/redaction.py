from __future__ import annotations

import re

# Ordered: the private-key block runs first so its body is not matched piecemeal.
_SECRET_SUBSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----", re.S), "PRIVATE_KEY_REDACTED"),
    (re.compile(r"\bsk-[A-Za-z0-9_-]{16,}\b"), "sk-REDACTED"),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), "AKIA_REDACTED"),
    (re.compile(r"\bghp_[A-Za-z0-9]{20,}\b"), "ghp_REDACTED"),
    # <bot id>:<auth secret>, as issued by the chat platform.
    (re.compile(r"\b\d{6,12}:[A-Za-z0-9_-]{30,}\b"), "BOT_TOKEN_REDACTED"),
)

TRUNCATION_MARK = "...(truncated)"


def redact_text(text: str, *, max_len: int = 400) -> str:
    """Mask API keys, cloud keys, bot tokens and PEM keys, then cap the length.

    Used for the stdout/stderr heads stored with each execution event.
    """
    if not text:
        return ""
    for pattern, replacement in _SECRET_SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    text = text.strip()
    if len(text) <= max_len:
        return text
    return text[:max_len] + TRUNCATION_MARK
