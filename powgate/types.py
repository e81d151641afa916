"""Enums and type aliases for powgate."""

from enum import StrEnum


class RateDecision(StrEnum):
    ALLOWED = "allowed"
    THROTTLED = "throttled"


class SearchMode(StrEnum):
    NORMAL = "normal"
    SIM = "sim"


class SearchEventKind(StrEnum):
    PROGRESS = "progress"
    FOUND = "found"
