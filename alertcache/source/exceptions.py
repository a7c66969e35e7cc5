"""Exception hierarchy for definition store access."""

from __future__ import annotations


class SourceError(Exception):
    """Base exception for all definition source errors."""


class SourceConnectionError(SourceError):
    """Failed to reach the definition store."""


class SourceParseError(SourceError):
    """The definition store returned a response that could not be parsed."""
