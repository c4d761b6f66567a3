"""바인드 값 마스킹 유틸리티.

Prepares the bind values of a compiled statement for debug logging: values
bound under sensitive names (password, token, ...) are hidden, and large
values are summarized so one statement stays one readable log line.

Usage:
    compiled = statement.compile(dialect=dialect)
    logger.debug("With parameters: %s", mask_parameters(compiled.params))
"""

import re
from collections.abc import Mapping
from typing import Any

# 마스킹 대상 바인드 이름 패턴 — Bind names whose values never reach the logs
_SENSITIVE_KEYS = re.compile(
    r"(password|passwd|secret|token|authorization|api_key|apikey|credential)",
    re.IGNORECASE,
)

MASK = "***"
MAX_VALUE_LENGTH = 200


def mask_parameters(params: Mapping[str, Any]) -> dict[str, Any]:
    """바인드 값을 로그용으로 변환합니다.

    Return a copy of the bind values safe to log. JSON-style values bound
    as dicts are masked by their own keys as well.

    Args:
        params: 바인드 이름 → 값 (Bind name → value, e.g. Compiled.params)

    Returns:
        dict[str, Any]: 마스킹된 사본 (Masked copy)
    """
    return {name: _loggable(name, value) for name, value in params.items()}


def summarize(value: Any) -> Any:
    """큰 값 요약 — Shorten long text and replace binary payloads by their size."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    if isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
        return f"{value[:MAX_VALUE_LENGTH]}...({len(value)} chars)"
    return value


def _loggable(name: str, value: Any) -> Any:
    if _SENSITIVE_KEYS.search(name):
        return MASK
    if isinstance(value, Mapping):
        return mask_parameters({str(k): v for k, v in value.items()})
    if isinstance(value, list):
        return [_loggable(name, item) for item in value]
    return summarize(value)
