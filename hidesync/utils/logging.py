from __future__ import annotations

import logging
import time

_LAST: dict[str, float] = {}
_MAX_CODES = 512


def warn_once(logger: logging.Logger, code: str, message: str, window: int = 60) -> bool:
    """Emit ``message`` at warning level at most once per ``window`` seconds for ``code``.

    Returns ``True`` when the warning was logged. The per-code cache is bounded;
    the stalest code is evicted when full.
    """
    now = time.monotonic()
    last = _LAST.get(code)
    if last is not None and now - last <= window:
        logger.debug("%s (suppressed): %s", code, message)
        return False
    if last is None and len(_LAST) >= _MAX_CODES:
        _LAST.pop(min(_LAST, key=_LAST.__getitem__), None)
    _LAST[code] = now
    logger.warning("%s: %s", code, message)
    return True


def reset_warnings() -> None:
    _LAST.clear()
