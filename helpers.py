import hashlib
import hmac
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, List, Tuple

from schemas import Rank

_BASE36 = string.digits + string.ascii_lowercase

# highest threshold first; anything below the last entry is bronze
RANK_THRESHOLDS: List[Tuple[int, Rank]] = [
    (1000, "legend"),
    (500, "master"),
    (200, "diamond"),
    (100, "platinum"),
    (50, "gold"),
    (20, "silver"),
]
LOWEST_RANK: Rank = "bronze"


def generate_id(prefix: str = "id") -> str:
    """`<prefix>_<epoch ms>_<9 random base36 chars>`. Unique with high probability only."""
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def hash_password(password: str) -> str:
    # unsalted single-round digest; not suitable for real credentials
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    return hmac.compare_digest(hash_password(password), password_hash or "")


def calculate_rank(votes: int) -> Rank:
    for threshold, rank in RANK_THRESHOLDS:
        if votes >= threshold:
            return rank
    return LOWEST_RANK


def utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def utc_today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def parse_timestamp(value: Any) -> float:
    """Epoch seconds for an ISO-8601 string (or number); 0 when unparsable."""
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str) or not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()
