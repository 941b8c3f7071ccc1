"""
Error taxonomy shared by handlers, clients and the command router.

Each class maps to one HTTP outcome (see `status`); async callbacks surface
the message as text instead.
"""

from __future__ import annotations


class IntakeError(Exception):
    status = 500


class ClientInputError(IntakeError):
    """Malformed or missing request fields."""

    status = 400


class ActionValueError(ClientInputError):
    """A button `value` that does not match its action's schema."""


class ConfigurationError(IntakeError):
    """A required credential or setting is absent."""

    status = 500


class SignatureError(IntakeError):
    status = 401


class RemoteApiError(IntakeError):
    """Non-2xx (or unreachable) response from GitHub, Slack or the LLM API."""

    status = 500

    def __init__(self, service: str, status: int, body: str = "") -> None:
        self.service = service
        self.http_status = status
        self.body = body
        super().__init__(f"{service} API error: {status} {body}".strip())
