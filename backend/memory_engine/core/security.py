from __future__ import annotations

import re

# OpenAI-style keys and bearer tokens as they appear in headers or URLs.
SECRET_PATTERNS = (
    (re.compile(r"sk-[A-Za-z0-9_-]{6,}"), "sk-***"),
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]{8,}"), r"\1***"),
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def redact_secrets(text: str) -> str:
    """Redact API keys or similar secrets from a string."""

    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_text(text: str, max_length: int) -> str:
    """Trim caller-provided text, drop control characters and clamp its length."""

    cleaned = _CONTROL_CHARS.sub("", text).strip()
    return cleaned[:max_length]
