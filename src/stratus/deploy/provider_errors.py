"""Parse and format provider deployment errors.

The CLI reports deployment failures on stderr, usually as
``ERROR: {"status": "Failed", "error": {"code": ..., "message": ..., "details": [...]}}``
with arbitrarily nested ``details``. Sometimes the payload is plain text.
:func:`parse_provider_error` normalises both into :class:`ProviderErrorInfo`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

_CODE_PATTERNS = (
    re.compile(r"Code:\s*([A-Za-z][A-Za-z0-9_.]+)"),
    re.compile(r"\(([A-Z][A-Za-z0-9]+)\)"),
)


@dataclass
class ProviderErrorDetail:
    code: str = ""
    message: str = ""
    target: str | None = None
    details: list[ProviderErrorDetail] = field(default_factory=list)


@dataclass
class ProviderErrorInfo:
    """Structured view of a failed provider call."""

    code: str = ""
    message: str = ""
    details: list[ProviderErrorDetail] = field(default_factory=list)
    raw: str = ""
    structured: bool = False

    def iter_details(self) -> list[ProviderErrorDetail]:
        """All nested details, depth-first."""
        flat: list[ProviderErrorDetail] = []
        stack = list(reversed(self.details))
        while stack:
            detail = stack.pop()
            flat.append(detail)
            stack.extend(reversed(detail.details))
        return flat

    @property
    def search_text(self) -> str:
        """Everything the conflict router matches signatures against."""
        parts = [self.code, self.message]
        for detail in self.iter_details():
            parts.extend([detail.code, detail.message])
        if not self.structured:
            parts.append(self.raw)
        return "\n".join(p for p in parts if p)


def _parse_detail(payload: dict[str, Any]) -> ProviderErrorDetail:
    return ProviderErrorDetail(
        code=str(payload.get("code") or ""),
        message=str(payload.get("message") or ""),
        target=payload.get("target"),
        details=[_parse_detail(d) for d in payload.get("details") or [] if isinstance(d, dict)],
    )


def _extract_json(text: str) -> dict[str, Any] | None:
    """Return the first JSON object embedded in *text*, if any."""
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            obj, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


def parse_provider_error(text: str) -> ProviderErrorInfo:
    """Parse CLI error output; falls back to the raw text when no JSON is found."""
    raw = (text or "").strip()
    body = re.sub(r"^\s*ERROR:\s*", "", raw)
    payload = _extract_json(body)

    if payload is not None:
        error = payload.get("error") if isinstance(payload.get("error"), dict) else payload
        if "code" in error or "message" in error:
            detail = _parse_detail(error)
            return ProviderErrorInfo(
                code=detail.code,
                message=detail.message,
                details=detail.details,
                raw=raw,
                structured=True,
            )

    code = ""
    for pattern in _CODE_PATTERNS:
        found = pattern.search(body)
        if found:
            code = found.group(1)
            break
    first_line = next((line.strip() for line in body.splitlines() if line.strip()), "")
    return ProviderErrorInfo(code=code, message=first_line or body, raw=raw)


def format_provider_error(info: ProviderErrorInfo) -> str:
    """``code: message`` followed by indented nested details."""
    head = f"{info.code}: {info.message}" if info.code else info.message
    lines = [head or "Unknown provider error"]

    def _walk(details: list[ProviderErrorDetail], depth: int) -> None:
        for detail in details:
            indent = "  " * depth
            label = f"{detail.code}: {detail.message}" if detail.code else detail.message
            lines.append(f"{indent}- {label}")
            _walk(detail.details, depth + 1)

    _walk(info.details, 1)
    return "\n".join(lines)


_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("locationnotavailable", "location not available"),
        "This region does not offer the resource type. Try westus2, centralus, "
        "eastus2, westeurope or eastasia.",
    ),
    (
        ("invalidresourcegrouplocation", "already exists in location"),
        "The resource group exists in a different region. Reuse its location, "
        "delete it, or choose another resource group name.",
    ),
    (
        ("authorizationfailed", "unauthorized", "authenticationfailed"),
        "Authentication failed. Run 'az login' (or 'az login --use-device-code') "
        "and check the active subscription with 'az account show'.",
    ),
    (
        ("quotaexceeded", "quota"),
        "Quota exceeded. Check usage with 'az vm list-usage --location <region>' "
        "or deploy to a different region.",
    ),
    (
        ("resourcenotfound", "not found"),
        "A referenced resource does not exist. Verify names and resource groups "
        "with 'az resource list --resource-group <rg>'.",
    ),
)


def troubleshooting_hints(info: ProviderErrorInfo) -> list[str]:
    """Operator guidance for well-known failure shapes."""
    text = info.search_text.lower() + "\n" + info.raw.lower()
    return [hint for needles, hint in _HINTS if any(n in text for n in needles)]


__all__ = [
    "ProviderErrorDetail",
    "ProviderErrorInfo",
    "format_provider_error",
    "parse_provider_error",
    "troubleshooting_hints",
]
