from __future__ import annotations

import logging
from typing import Any

from memory_engine.core.security import redact_secrets


class RedactionFilter(logging.Filter):
    """Handler filter that redacts secrets from messages and string arguments.

    Installed on handlers rather than loggers so records propagated from
    ``memory_engine.*`` loggers pass through it too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_secrets(record.msg)
        if isinstance(record.args, dict):
            record.args = {key: _redact_arg(value) for key, value in record.args.items()}
        elif record.args:
            record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def setup_logging(level: str) -> None:
    """Configure root logging with secret redaction on every handler."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(item, RedactionFilter) for item in handler.filters):
            handler.addFilter(RedactionFilter())


def _redact_arg(value: Any) -> Any:
    # Non-string args keep their type so numeric format specs still apply.
    if isinstance(value, (str, BaseException)):
        return redact_secrets(str(value))
    return value
