"""Sign-up input checks: email shape, disposable domains and password rules."""

from __future__ import annotations

import re
from dataclasses import astuple, dataclass
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")
MIN_PASSWORD_LENGTH: int = 12

DISPOSABLE_DOMAINS = frozenset(
    {
        "tempmail.com",
        "10minutemail.com",
        "guerrillamail.com",
        "throwaway.email",
        "mailinator.com",
        "yopmail.com",
    }
)


class ValidationError(ValueError):
    """Raised for input the user has to correct; the message is shown as is."""


def validate_email(email: str) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.lower()))


def get_email_domain(email: str) -> Optional[str]:
    if not validate_email(email):
        return None
    return email.split("@", 1)[1] or None


def is_disposable_email(email: str) -> bool:
    domain = get_email_domain(email)
    return bool(domain) and domain.lower() in DISPOSABLE_DOMAINS


@dataclass(frozen=True, slots=True)
class PasswordRequirements:
    min_length: bool
    has_uppercase: bool
    has_lowercase: bool
    has_number: bool
    has_special: bool

    @property
    def met(self) -> int:
        return sum(astuple(self))


def check_password_requirements(password: str) -> PasswordRequirements:
    return PasswordRequirements(
        min_length=len(password) >= MIN_PASSWORD_LENGTH,
        has_uppercase=bool(re.search(r"[A-Z]", password)),
        has_lowercase=bool(re.search(r"[a-z]", password)),
        has_number=bool(re.search(r"[0-9]", password)),
        has_special=bool(SPECIAL_CHARACTERS.search(password)),
    )


def is_valid_password(password: str) -> bool:
    """At least 12 characters and four of the five requirements."""

    requirements = check_password_requirements(password)
    return requirements.min_length and requirements.met >= 4


def ensure_sign_up_input(email: str, password: str) -> None:
    if not validate_email(email):
        raise ValidationError("Please enter a valid email address.")
    if is_disposable_email(email):
        raise ValidationError("Disposable email addresses are not supported.")
    if not is_valid_password(password):
        raise ValidationError(
            "Password must be at least 12 characters and include upper and lower case "
            "letters, a number or a special character."
        )
