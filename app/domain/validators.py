"""Pure input validators for registration and authentication.

Every function here is deterministic and side-effect free. "Invalid" is a
normal result and is reported through the return value; only a non-string
argument is treated as a programming error and raises ``TypeError``.
"""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable, List, Sequence

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_SCORE = 5
DEFAULT_MIN_PASSWORD_SCORE = 4

CITIZEN_NAME_MAX_LENGTH = 100
STAFF_NAME_MAX_LENGTH = 50
NAME_MIN_LENGTH = 2

DEFAULT_INSTITUTIONAL_DOMAINS: Sequence[str] = (
    "gov.br",
    "prefeitura.",
    "policia.",
    "bombeiros.",
    "defesacivil.",
    "samu.",
    "pm.",
    "pc.",
    ".mil.br",
)

_EMAIL_RE = re.compile(
    r"[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?"
    r"@[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z]{2,})+"
)
_NON_DIGIT_RE = re.compile(r"[^0-9]")
_SPECIAL_CHAR_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
_LETTER_RUN_RE = re.compile(r"[^\W\d_]+")
_DIGIT_RUN_RE = re.compile(r"[0-9]+")
_EVENT_HANDLER_RE = re.compile(r"on\w+=", re.IGNORECASE)
_JAVASCRIPT_RE = re.compile(r"javascript:", re.IGNORECASE)

# Whole alphabetic tokens that mark a password as following a common pattern.
_COMMON_WORDS = frozenset({"password", "qwerty", "admin", "letmein", "senha"})
_COMMON_DIGIT_SEQUENCE = "123456"
_VERY_COMMON_PASSWORDS = (
    "password",
    "password123",
    "123456789",
    "qwerty123",
    "admin123",
    "senha123",
)

PASSWORD_ERROR_LENGTH = f"Senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres"
PASSWORD_ERROR_LOWERCASE = "Senha deve conter pelo menos uma letra minúscula"
PASSWORD_ERROR_UPPERCASE = "Senha deve conter pelo menos uma letra maiúscula"
PASSWORD_ERROR_DIGIT = "Senha deve conter pelo menos um número"
PASSWORD_ERROR_SPECIAL = "Senha deve conter pelo menos um caractere especial"
PASSWORD_ERROR_COMMON_PATTERN = "Senha não deve conter padrões comuns"
PASSWORD_ERROR_VERY_COMMON = "Senha muito comum, escolha uma mais única"


@dataclass(slots=True)
class PasswordStrength:
    """
    Outcome of ``score_password_strength``.

    ``errors`` lists blocklist violations, which always invalidate the
    password. ``unmet_rules`` lists the scoring criteria the password missed;
    those only cost points.
    """

    is_valid: bool
    score: int
    errors: List[str] = field(default_factory=list)
    unmet_rules: List[str] = field(default_factory=list)

    @property
    def feedback(self) -> List[str]:
        return [*self.unmet_rules, *self.errors]


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _digits(value: str) -> str:
    return _NON_DIGIT_RE.sub("", value)


def normalize_email(email: str) -> str:
    """Canonical form used for storage, lookups and rate-limit keys."""
    _require_str(email, "email")
    return unicodedata.normalize("NFKC", email).strip().lower()


def validate_email_syntax(email: str) -> bool:
    _require_str(email, "email")
    if not email.strip():
        return False
    if ".." in email:
        return False
    if email.startswith(".") or email.endswith("."):
        return False
    if "@." in email or ".@" in email:
        return False
    return _EMAIL_RE.fullmatch(email) is not None


def validate_phone_br(phone: str) -> bool:
    """Brazilian landline (10 digits) or mobile (11 digits) number, punctuation ignored."""
    _require_str(phone, "phone")
    digits = _digits(phone)
    if len(digits) not in (10, 11):
        return False

    ddd = int(digits[:2])
    if ddd < 11 or ddd > 99:
        return False

    if len(digits) == 11:
        # Mobile numbers carry the leading 9 right after the area code.
        if digits[2] != "9":
            return False
        subscriber = digits[3:]
    else:
        subscriber = digits[2:]

    return subscriber[0] not in ("0", "1")


def _cpf_check_digit(digits: str, first_weight: int) -> int:
    total = sum(int(digit) * weight for digit, weight in zip(digits, range(first_weight, 1, -1)))
    remainder = (total * 10) % 11
    return 0 if remainder in (10, 11) else remainder


def validate_cpf(cpf: str) -> bool:
    _require_str(cpf, "cpf")
    digits = _digits(cpf)
    if len(digits) != 11:
        return False
    if len(set(digits)) == 1:
        return False
    if _cpf_check_digit(digits[:9], 10) != int(digits[9]):
        return False
    return _cpf_check_digit(digits[:10], 11) == int(digits[10])


def _matches_common_pattern(password: str) -> bool:
    if any(_COMMON_DIGIT_SEQUENCE in run for run in _DIGIT_RUN_RE.findall(password)):
        return True
    return any(token.lower() in _COMMON_WORDS for token in _LETTER_RUN_RE.findall(password))


def _matches_very_common_password(password: str) -> bool:
    lowered = password.lower()
    return any(common in lowered for common in _VERY_COMMON_PASSWORDS)


def score_password_strength(
    password: str,
    min_score: int = DEFAULT_MIN_PASSWORD_SCORE,
) -> PasswordStrength:
    """
    Score a password from 0 to 5 and collect the rules it breaks.

    Args:
        password: Candidate password
        min_score: Minimum score for the password to be accepted

    Returns:
        PasswordStrength with ``is_valid`` true only when the score reaches
        ``min_score`` and the password hit no blocklist.
    """
    _require_str(password, "password")
    errors: List[str] = []
    unmet_rules: List[str] = []
    score = 0

    checks = (
        (len(password) >= MIN_PASSWORD_LENGTH, PASSWORD_ERROR_LENGTH),
        (any(ch.islower() for ch in password), PASSWORD_ERROR_LOWERCASE),
        (any(ch.isupper() for ch in password), PASSWORD_ERROR_UPPERCASE),
        (any(ch.isdigit() for ch in password), PASSWORD_ERROR_DIGIT),
        (_SPECIAL_CHAR_RE.search(password) is not None, PASSWORD_ERROR_SPECIAL),
    )
    for passed, message in checks:
        if passed:
            score += 1
        else:
            unmet_rules.append(message)

    if _matches_common_pattern(password):
        errors.append(PASSWORD_ERROR_COMMON_PATTERN)
        score = max(0, score - 2)

    if _matches_very_common_password(password):
        errors.append(PASSWORD_ERROR_VERY_COMMON)
        score = max(0, score - 3)

    return PasswordStrength(
        is_valid=score >= min_score and not errors,
        score=score,
        errors=errors,
        unmet_rules=unmet_rules,
    )


def is_institutional_email(
    email: str,
    domains: Iterable[str] = DEFAULT_INSTITUTIONAL_DOMAINS,
) -> bool:
    """
    True when the e-mail domain belongs to a government/public-safety allow-list.

    Fragments ending in a dot (``policia.``) must start one of the domain
    labels; every other fragment (``gov.br``, ``.mil.br``) must be a suffix
    of the domain.
    """
    _require_str(email, "email")
    _, sep, domain = email.strip().lower().rpartition("@")
    if not sep or not domain:
        return False

    for fragment in domains:
        fragment = fragment.strip().lower()
        if not fragment:
            continue
        if fragment.endswith("."):
            if domain.startswith(fragment) or f".{fragment}" in domain:
                return True
        else:
            suffix = fragment.lstrip(".")
            if domain == suffix or domain.endswith(f".{suffix}"):
                return True
    return False


def sanitize_text(value: str) -> str:
    """Strip markup-ish fragments from free text. Not a substitute for output encoding."""
    _require_str(value, "value")
    cleaned = value.replace("<", "").replace(">", "")
    cleaned = _JAVASCRIPT_RE.sub("", cleaned)
    cleaned = _EVENT_HANDLER_RE.sub("", cleaned)
    return cleaned.strip()


def validate_full_name(name: str, max_length: int = CITIZEN_NAME_MAX_LENGTH) -> bool:
    """Letters (accents included) and spaces only, between 2 and ``max_length`` characters."""
    _require_str(name, "name")
    if not NAME_MIN_LENGTH <= len(name) <= max_length:
        return False
    return all(ch.isalpha() or ch == " " for ch in name)


def format_lockout_duration(remaining: timedelta) -> str:
    minutes = max(1, math.ceil(remaining.total_seconds() / 60))
    return f"{minutes} minuto{'s' if minutes != 1 else ''}"
