"""Exception types raised by the harness."""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for harness failures."""


class ConfigError(HarnessError):
    """Required configuration is missing; the process cannot start."""


class CredentialNotFoundError(HarnessError):
    """The credential secret referenced by runner jobs does not exist."""

    def __init__(self, namespace: str, name: str) -> None:
        super().__init__(f"Secret '{name}' not found in namespace '{namespace}'")
        self.namespace = namespace
        self.name = name
