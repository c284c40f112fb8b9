"""
GenBridge SG — Scam Heuristic

Advisory, pattern-based classification of chat messages.  Each detector is a
case-insensitive regex tied to exactly one reason category; a category is
reported at most once however many of its detectors fire.  Severity is the
number of distinct categories: 1 → low, 2 → medium, 3+ → high.

The result only ever annotates how a message is displayed.  Sending is never
blocked on it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

import structlog

logger = structlog.get_logger("genbridge.scam_detection")


class ScamCategory(str, Enum):
    FINANCIAL_REQUEST = "financial_request"
    SENSITIVE_PERSONAL_INFO = "sensitive_personal_info"
    SUSPICIOUS_OFFER = "suspicious_offer"
    URGENCY_TACTIC = "urgency_tactic"
    SUSPICIOUS_LINK = "suspicious_link"
    OFF_PLATFORM_REDIRECT = "off_platform_redirect"


REASON_LABELS: dict[ScamCategory, str] = {
    ScamCategory.FINANCIAL_REQUEST: "Contains financial/payment requests",
    ScamCategory.SENSITIVE_PERSONAL_INFO: "Requests sensitive personal information",
    ScamCategory.SUSPICIOUS_OFFER: "Contains suspicious offers",
    ScamCategory.URGENCY_TACTIC: "Uses urgency tactics",
    ScamCategory.SUSPICIOUS_LINK: "Contains suspicious links",
    ScamCategory.OFF_PLATFORM_REDIRECT: "Attempts to move conversation off-platform",
}

# Ordered detector table.  Order decides the order of reported reasons.
_DETECTORS: list[tuple[re.Pattern[str], ScamCategory]] = [
    (
        re.compile(r"\b(bank\s*account|credit\s*card|debit\s*card|account\s*number|routing\s*number)\b", re.I),
        ScamCategory.FINANCIAL_REQUEST,
    ),
    (
        re.compile(r"\b(paypal|venmo|zelle|paylah|paynow|wire\s*transfer|western\s*union|moneygram)\b", re.I),
        ScamCategory.FINANCIAL_REQUEST,
    ),
    (
        re.compile(r"\b(send\s*me\s*money|pay\s*me\s*first|upfront\s*payment|advance\s*fee)\b", re.I),
        ScamCategory.FINANCIAL_REQUEST,
    ),
    (
        re.compile(r"\b(social\s*security|nric|ic\s*number|passport\s*number|singpass)\b", re.I),
        ScamCategory.SENSITIVE_PERSONAL_INFO,
    ),
    (
        re.compile(r"\b(mother('s)?\s*maiden|password|pin\s*number|otp|verification\s*code)\b", re.I),
        ScamCategory.SENSITIVE_PERSONAL_INFO,
    ),
    (
        re.compile(r"\b(lottery|won\s*a\s*prize|inheritance|million\s*dollars|get\s*rich\s*quick)\b", re.I),
        ScamCategory.SUSPICIOUS_OFFER,
    ),
    (
        re.compile(r"\b(investment\s*opportunity|guaranteed\s*returns|crypto\s*trading)\b", re.I),
        ScamCategory.SUSPICIOUS_OFFER,
    ),
    (
        re.compile(r"\b(urgent|act\s*now|limited\s*time|expires\s*today|don't\s*miss)\b", re.I),
        ScamCategory.URGENCY_TACTIC,
    ),
    (
        re.compile(r"(\bclick\s*(this|here|the)\s*link\b|\bbit\.ly\b|\btinyurl\b|\bgoo\.gl\b)", re.I),
        ScamCategory.SUSPICIOUS_LINK,
    ),
    (
        re.compile(r"\b(whatsapp|telegram|wechat|private\s*email|contact\s*me\s*at)\b", re.I),
        ScamCategory.OFF_PLATFORM_REDIRECT,
    ),
]


@dataclass(frozen=True)
class ScamWarning:
    is_scammy: bool
    severity: str | None  # "low" / "medium" / "high", None when clean
    categories: tuple[ScamCategory, ...] = field(default_factory=tuple)

    @property
    def reasons(self) -> list[str]:
        return [REASON_LABELS[c] for c in self.categories]

    def to_dict(self) -> dict:
        return {
            "isScammy": self.is_scammy,
            "severity": self.severity,
            "categories": [c.value for c in self.categories],
            "reasons": self.reasons,
        }


CLEAN = ScamWarning(is_scammy=False, severity=None)


def _severity(count: int) -> str | None:
    if count >= 3:
        return "high"
    if count == 2:
        return "medium"
    if count == 1:
        return "low"
    return None


def detect_scam_patterns(message: str | None) -> ScamWarning:
    """Classify ``message``; always returns a value, even for empty input."""
    if not message:
        return CLEAN

    categories: list[ScamCategory] = []
    for pattern, category in _DETECTORS:
        if category in categories:
            continue
        if pattern.search(message):
            categories.append(category)

    if not categories:
        return CLEAN

    warning = ScamWarning(
        is_scammy=True,
        severity=_severity(len(categories)),
        categories=tuple(categories),
    )
    logger.debug(
        "scam_patterns_detected",
        severity=warning.severity,
        categories=[c.value for c in categories],
    )
    return warning
