"""Password policy, strength analysis and bcrypt hashing."""

import math
import re
import secrets
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import bcrypt
from django.conf import settings

MIN_LENGTH = 12
MAX_LENGTH = 128
SPECIAL_CHARS = "@$!%*?&"

LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
UPPERCASE = LOWERCASE.upper()
DIGITS = "0123456789"

COMMON_PASSWORDS = frozenset(
    """
    password 123456 123456789 qwerty abc123 password123 admin letmein welcome
    monkey 1234567890 iloveyou princess rockyou 12345678 nicole daniel babygirl
    lovely jessica 654321 michael ashley qwerty123 111111 michelle tigger
    sunshine chocolate password1 soccer anthony friends butterfly purple angel
    jordan liverpool justin loveme 123123 football secret andrea carlos
    jennifer joshua bubbles 1234567 hannah amanda loveyou pretty basketball
    andrew angels tweety flower playboy hello elizabeth hottie tinkerbell
    charlie samantha barbie chelsea lovers teamo jasmine brandon 666666 shadow
    melissa eminem matthew robert danielle forever family jonathan 987654321
    computer whatever dragon vanessa cookie naruto summer sweety spongebob
    joseph junior softball taylor yellow daniela
    """.split()
)

COMMON_WORDS = (
    "password", "admin", "login", "user", "test", "demo", "guest",
    "root", "system", "default", "master", "super", "secret",
    "company", "business", "office", "work", "home", "family",
    "battery", "energy", "power", "electric", "supplier", "warehouse",
)

COMMON_PATTERNS = (
    re.compile(r"123|abc|qwe|password|admin|login|user|test|demo", re.IGNORECASE),
    re.compile(r"^(.+)\1+$"),
    re.compile(r"012|234|345|456|567|678|789|890"),
    re.compile(
        r"abc|bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl|klm|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz",
        re.IGNORECASE,
    ),
)

KEYBOARD_PATTERNS = (
    re.compile(r"qwerty|asdf|zxcv|yuiop|hjkl|bnm", re.IGNORECASE),
    re.compile(r"1234|5678|9012|0987|6543|3210"),
    re.compile(r"qaz|wsx|edc|rfv|tgb|yhn|ujm", re.IGNORECASE),
)

REPEATED_RE = re.compile(r"(.)\1{2,}")


@dataclass
class StrengthResult:
    score: int
    strength: str
    valid: bool
    entropy: float
    feedback: List[str] = field(default_factory=list)
    requirements: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "strength": self.strength,
            "valid": self.valid,
            "entropy": round(self.entropy, 2),
            "feedback": self.feedback,
            "requirements": self.requirements,
        }


def password_entropy(password: str) -> float:
    """Shannon entropy per character times the length, in bits."""
    if not password:
        return 0.0
    n = len(password)
    per_char = -sum((c / n) * math.log2(c / n) for c in Counter(password).values())
    return per_char * n


def contains_common_words(password: str) -> bool:
    lowered = password.lower()
    return lowered in COMMON_PASSWORDS or any(w in lowered for w in COMMON_WORDS)


def contains_keyboard_patterns(password: str) -> bool:
    return any(p.search(password) for p in KEYBOARD_PATTERNS)


def _strength_label(score: int) -> str:
    if score <= 2:
        return "very-weak"
    if score <= 4:
        return "weak"
    if score <= 6:
        return "fair"
    if score <= 8:
        return "good"
    if score <= 9:
        return "strong"
    return "very-strong"


def analyze_strength(password: str) -> StrengthResult:
    """Score ``password`` on a 0..10 scale.

    Length and character classes add points; repeats, predictable
    sequences, dictionary words and keyboard walks subtract them. A password
    is valid with a score of at least 6 and no feedback.
    """
    feedback = []
    score = 0.0
    req = {
        "min_length": False,
        "has_uppercase": False,
        "has_lowercase": False,
        "has_numbers": False,
        "has_special_chars": False,
        "no_common_patterns": True,
        "no_repeated_chars": True,
        "entropy_check": False,
    }

    if len(password) >= MIN_LENGTH:
        req["min_length"] = True
        score += 2
        if len(password) >= 16:
            score += 1
        if len(password) >= 20:
            score += 1
    else:
        feedback.append(f"Password must be at least {MIN_LENGTH} characters (current: {len(password)})")

    checks = (
        ("has_lowercase", r"[a-z]", "Password must contain lowercase letters"),
        ("has_uppercase", r"[A-Z]", "Password must contain uppercase letters"),
        ("has_numbers", r"\d", "Password must contain numbers"),
        ("has_special_chars", r"[@$!%*?&]", f"Password must contain special characters ({SPECIAL_CHARS})"),
    )
    for key, pattern, message in checks:
        if re.search(pattern, password):
            req[key] = True
            score += 1
        else:
            feedback.append(message)

    if REPEATED_RE.search(password):
        req["no_repeated_chars"] = False
        feedback.append("Password contains too many repeated characters")
        score -= 1

    if any(p.search(password) for p in COMMON_PATTERNS):
        req["no_common_patterns"] = False
        feedback.append("Password contains common patterns and is predictable")
        score -= 2

    entropy = password_entropy(password)
    if entropy >= 60:
        req["entropy_check"] = True
        score += 1
    elif entropy >= 50:
        score += 0.5
    else:
        feedback.append("Password lacks sufficient randomness")

    if contains_common_words(password):
        feedback.append("Password contains common words")
        score -= 1
    if contains_keyboard_patterns(password):
        feedback.append("Password contains keyboard patterns")
        score -= 1

    # round half up, like the score shown to users
    final = max(0, min(10, math.floor(score + 0.5)))
    return StrengthResult(
        score=final,
        strength=_strength_label(final),
        valid=final >= 6 and not feedback,
        entropy=entropy,
        feedback=feedback,
        requirements=req,
    )


def _personal_tokens(personal_info: Iterable[Optional[str]]) -> List[str]:
    tokens = []
    for value in personal_info:
        if not value:
            continue
        value = value.lower()
        if "@" in value:
            value = value.split("@", 1)[0]
        tokens.extend(t for t in re.split(r"[^a-z0-9]+", value) if len(t) >= 4)
    return tokens


def validate_password(password: str, personal_info: Iterable[Optional[str]] = ()) -> dict:
    """Check ``password`` against the portal policy.

    Args:
        password: Candidate password.
        personal_info: Email, company and contact names; any word of four
            or more characters from them may not appear in the password.

    Returns:
        dict: ``valid``, ``violations`` and the strength ``score``.
    """
    violations = []
    if len(password) < MIN_LENGTH:
        violations.append(f"Password must be at least {MIN_LENGTH} characters")
    if len(password) > MAX_LENGTH:
        violations.append(f"Password must not exceed {MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        violations.append("Password must contain uppercase letters")
    if not re.search(r"[a-z]", password):
        violations.append("Password must contain lowercase letters")
    if not re.search(r"\d", password):
        violations.append("Password must contain numbers")
    if not re.search(r"[@$!%*?&]", password):
        violations.append("Password must contain special characters")
    if contains_common_words(password):
        violations.append("Password contains common words or patterns")
    if contains_keyboard_patterns(password):
        violations.append("Password contains keyboard patterns")
    lowered = password.lower()
    if any(t in lowered for t in _personal_tokens(personal_info)):
        violations.append("Password must not contain personal information")

    strength = analyze_strength(password)
    return {
        "valid": not violations and strength.valid,
        "violations": violations,
        "score": strength.score,
    }


def generate_password(length: int = 16) -> str:
    """Random password with at least one character of every class."""
    length = max(length, 4)
    pool = LOWERCASE + UPPERCASE + DIGITS + SPECIAL_CHARS
    chars = [
        secrets.choice(LOWERCASE),
        secrets.choice(UPPERCASE),
        secrets.choice(DIGITS),
        secrets.choice(SPECIAL_CHARS),
    ]
    chars.extend(secrets.choice(pool) for _ in range(length - 4))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def mask_password(password: str, visible: int = 3) -> str:
    if len(password) <= visible * 2:
        return "*" * len(password)
    return password[:visible] + "*" * (len(password) - visible * 2) + password[-visible:]


def _bcrypt_input(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes and newer releases reject more
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    rounds = getattr(settings, "BCRYPT_ROUNDS", 12)
    return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_bcrypt_input(password), hashed.encode("ascii"))
    except ValueError:
        # malformed stored hash
        return False
