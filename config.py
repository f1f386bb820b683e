"""
Runtime settings for the Rankboard backend.

Everything environment-dependent is resolved here, once, and handed to the
data layer explicitly. Nothing below `main.py` reads os.environ.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

BACKENDS = ("local", "hosted", "memory")


def _is_vercel() -> bool:
    return os.getenv("VERCEL") == "1" or os.getenv("VERCEL_ENV") is not None


@dataclass(frozen=True)
class Settings:
    backend: str = "local"
    data_dir: Path = Path("data")
    database_url: Optional[str] = None
    database_name: str = "appdb"
    kv_collection: str = "kv"
    use_s3: bool = False
    s3_bucket: str = "rankboard-uploads"
    s3_region: str = "ap-southeast-1"
    s3_custom_domain: Optional[str] = None
    upload_dir: Path = Path("public") / "uploads"
    daily_vote_limit: int = 10

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown DATA_BACKEND: {self.backend}")


@lru_cache()
def get_settings() -> Settings:
    backend = os.getenv("DATA_BACKEND") or ("hosted" if _is_vercel() else "local")
    return Settings(
        backend=backend,
        data_dir=Path(os.getenv("DATA_DIR") or Path.cwd() / "data"),
        database_url=os.getenv("DATABASE_URL") or None,
        database_name=os.getenv("DATABASE_NAME") or "appdb",
        kv_collection=os.getenv("KV_COLLECTION") or "kv",
        use_s3=os.getenv("USE_S3_STORAGE", "false").lower() == "true",
        s3_bucket=os.getenv("AWS_STORAGE_BUCKET_NAME", "rankboard-uploads"),
        s3_region=os.getenv("AWS_S3_REGION_NAME", "ap-southeast-1"),
        s3_custom_domain=os.getenv("AWS_S3_CUSTOM_DOMAIN") or None,
        upload_dir=Path(os.getenv("UPLOAD_DIR") or Path.cwd() / "public" / "uploads"),
        daily_vote_limit=int(os.getenv("DAILY_VOTE_LIMIT", "10")),
    )
