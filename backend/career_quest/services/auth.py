import hashlib
import hmac
import re
import secrets
import unicodedata

SESSION_TOKEN_BYTES = 24
NON_DIGIT_PATTERN = re.compile(r"\D+")
WHITESPACE_PATTERN = re.compile(r"\s+")
PHONE_SUFFIX_DIGITS = 8


def create_session_token() -> str:
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def token_matches(raw_token: str, token_hash: str | None) -> bool:
    if not raw_token or not token_hash:
        return False
    return hmac.compare_digest(hash_token(raw_token), token_hash)


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def normalize_whitespace(value: str | None) -> str:
    return WHITESPACE_PATTERN.sub(" ", (value or "").strip())


def normalize_name(value: str | None) -> str:
    decomposed = unicodedata.normalize("NFD", normalize_whitespace(value).lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def digits_only(value: str | None) -> str:
    return NON_DIGIT_PATTERN.sub("", value or "")


def phone_matches(stored: str | None, submitted: str | None) -> bool:
    left = digits_only(stored)
    right = digits_only(submitted)
    if not left or not right:
        return False
    if left == right:
        return True
    # Tolerate country-code formatting differences.
    if len(left) >= PHONE_SUFFIX_DIGITS and len(right) >= PHONE_SUFFIX_DIGITS:
        return left[-PHONE_SUFFIX_DIGITS:] == right[-PHONE_SUFFIX_DIGITS:]
    return False


def normalize_client_ip(raw: str | None) -> str:
    ip = (raw or "").strip()
    if ip == "::1":
        return "127.0.0.1"
    if ip.startswith("::ffff:"):
        return ip[len("::ffff:"):]
    return ip
