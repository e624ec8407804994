"""
Exception taxonomy for the Eagle edge daemon.

Transport, decode and field-parse errors are absorbed at the poll boundary and
converted into a comm-failure transition. MissingConfigurationError is raised
once at startup and stops the daemon before polling begins.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations


class EagleError(Exception):
    """Base class for all Eagle edge errors."""


class TransportError(EagleError):
    """The gateway could not be reached or answered with a non-200 status."""


class DecodeError(EagleError):
    """The gateway response body is not valid JSON / XML."""


class ParseError(EagleError, ValueError):
    """A string could not be interpreted as a number."""


class FieldParseError(ParseError):
    """A reading field is malformed; the whole poll must be discarded."""


class MissingConfigurationError(EagleError):
    """Required device configuration is absent; polling cannot start."""
