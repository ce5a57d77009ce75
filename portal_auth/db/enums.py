"""Enum definitions for customer auth."""

from enum import Enum


class AuthMethod(str, Enum):
    """How a session (or the account's latest login) was established."""

    MAGIC_LINK = "magic_link"
    PASSWORD = "password"
    CLERK = "clerk"


class TokenKind(str, Enum):
    """
    Kinds of single-use token sharing the account's token slot.

    - MAGIC_LINK: passwordless login link (24h)
    - PASSWORD_RESET: reset-password link (1h)
    """

    MAGIC_LINK = "magic_link"
    PASSWORD_RESET = "password_reset"
