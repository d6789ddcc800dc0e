"""
auth/credentials.py -- Format validation for names, emails and passwords.

Pure functions over their inputs: no DB access, no logging of values.
Returns Ok() or the first InvalidCredential found, checking email, then
password, then name.

Rules:
  email     local-part@domain, where domain is a dotted hostname ending in an
            alphabetic TLD or a literal IPv4 address; at most 256 characters.
  password  8-60 characters with at least one uppercase letter, one
            lowercase letter and one character that is neither a letter nor
            a digit, and at most 72 bytes once UTF-8 encoded. The value is
            never echoed back in the failure.
  name      3-60 characters.

Layer rule: imports only from core/.
"""

from __future__ import annotations

import re

from core.results import InvalidCredential, Ok, Result

MAX_EMAIL_LENGTH = 256
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 60
# bcrypt only accepts 72 bytes of input.
MAX_PASSWORD_BYTES = 72
MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 60

_OCTET = r"(?:25[0-5]|2[0-4][0-9]|1[0-9]{2}|[1-9]?[0-9])"
_IPV4 = rf"{_OCTET}(?:\.{_OCTET}){{3}}"
_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
_HOSTNAME = rf"(?:{_LABEL}\.)+[A-Za-z]{{2,}}"
_LOCAL_PART = r"[\w+-]+(?:\.[\w+-]+)*"

# re.ASCII keeps \w to [A-Za-z0-9_]; unicode local parts are not accepted.
EMAIL_PATTERN = re.compile(rf"{_LOCAL_PART}@(?:{_IPV4}|{_HOSTNAME})", re.ASCII)


def is_valid_email(email: str) -> bool:
    return len(email) <= MAX_EMAIL_LENGTH and EMAIL_PATTERN.fullmatch(email) is not None


def is_valid_password(password: str) -> bool:
    return (
        MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH
        and len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES
        and any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(not c.isalnum() for c in password)
    )


def is_valid_name(name: str) -> bool:
    return MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH


def validate_credentials(
    name: str | None = None,
    email: str | None = None,
    password: str | None = None,
    *,
    check_name: bool = False,
    check_email: bool = False,
    check_password: bool = False,
) -> Result[None]:
    """Validate the requested fields and return Ok() or the first failure.

    A field that is requested but None fails with InvalidCredential(field, "").
    Fields that are not requested are ignored even when present.
    """
    if check_email:
        if email is None:
            return InvalidCredential("email", "")
        if not is_valid_email(email):
            return InvalidCredential("email", email)

    if check_password:
        if password is None or not is_valid_password(password):
            return InvalidCredential("password", "")

    if check_name:
        if name is None:
            return InvalidCredential("name", "")
        if not is_valid_name(name):
            return InvalidCredential("name", name)

    return Ok()
