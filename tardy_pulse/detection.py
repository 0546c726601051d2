"""Keyword heuristics that spot late notices and pull a reason out of them."""

from __future__ import annotations

from typing import Optional, Sequence

LATE_KEYWORDS: Sequence[str] = (
    "遲到", "晚到", "晚點到", "遲點到", "會晚到", "會遲到",
    "晚一點", "遲一點", "延遲到達", "延後到達",
    "塞車", "路況", "交通", "來不及", "趕不上",
    "有事", "臨時", "抱歉", "不好意思",
    "late", "Late", "running behind", "delayed", "traffic", "stuck in",
    "won't make it", "sorry", "Sorry", "unexpectedly",
)

# Order matters: the first keyword found in this list wins.
REASON_KEYWORDS: Sequence[str] = (
    "因為", "由於", "原因是", "是因為",
    "塞車", "路況", "交通", "公車", "捷運", "開車",
    "身體", "不舒服", "生病", "發燒",
    "家裡", "家中", "小孩", "家人",
    "臨時", "突然", "緊急",
    "忘記", "睡過頭", "鬧鐘",
    "because", "due to",
    "traffic", "bus", "train", "subway", "flat tire",
    "sick", "fever", "doctor",
    "family", "kid", "child",
    "emergency", "suddenly", "urgent",
    "forgot", "overslept", "alarm",
)

REASON_WINDOW = 50
IMPLICIT_REASON_MIN_LENGTH = 10


def detect_late_keywords(message: str) -> bool:
    """Return True when the message reads like a late notice."""

    return any(keyword in message for keyword in LATE_KEYWORDS)


def extract_late_reason(message: str) -> Optional[str]:
    """Return a best-effort reason snippet, or None when nothing usable is found."""

    for keyword in REASON_KEYWORDS:
        index = message.find(keyword)
        if index != -1:
            reason = message[index:index + REASON_WINDOW].strip()
            return reason or None

    return message if len(message) > IMPLICIT_REASON_MIN_LENGTH else None


__all__ = [
    "LATE_KEYWORDS",
    "REASON_KEYWORDS",
    "detect_late_keywords",
    "extract_late_reason",
]
