import hashlib
import uuid
from typing import Callable

CACHE_KEY_PREFIX = "cx"
PROMPT_DIGEST_CHARS = 16
SALT_CHARS = 8


def _hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def default_salt() -> str:
    return uuid.uuid4().hex[:SALT_CHARS]


def compute_prompt_digest(prompt: str) -> str:
    return _hash_text(prompt)[:PROMPT_DIGEST_CHARS]


def compute_cache_key(prompt: str, salt_factory: Callable[[], str] = default_salt) -> str:
    """Key = deterministic prompt digest + per-run salt, e.g. ``cx-3f2a...-9c1d04be``."""
    return f"{CACHE_KEY_PREFIX}-{compute_prompt_digest(prompt)}-{salt_factory()}"
