import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

# Order matters: the first category whose keywords match wins.
DEFAULT_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Food",
        (
            "restaurant",
            "food",
            "dining",
            "cafe",
            "pizza",
            "burger",
            "coffee",
            "lunch",
            "dinner",
            "breakfast",
            "grocery",
            "supermarket",
            "market",
        ),
    ),
    (
        "Transport",
        (
            "uber",
            "lyft",
            "taxi",
            "gas",
            "fuel",
            "parking",
            "metro",
            "bus",
            "train",
            "flight",
            "airline",
            "car",
            "vehicle",
        ),
    ),
    (
        "Shopping",
        (
            "amazon",
            "store",
            "shop",
            "mall",
            "clothing",
            "shoes",
            "electronics",
            "online",
            "purchase",
            "buy",
        ),
    ),
    (
        "Entertainment",
        (
            "movie",
            "cinema",
            "netflix",
            "spotify",
            "game",
            "concert",
            "theater",
            "entertainment",
            "fun",
        ),
    ),
    (
        "Bills",
        (
            "electric",
            "water",
            "internet",
            "phone",
            "rent",
            "mortgage",
            "insurance",
            "utility",
            "bill",
        ),
    ),
    (
        "Healthcare",
        (
            "doctor",
            "hospital",
            "pharmacy",
            "medicine",
            "medical",
            "health",
            "clinic",
            "dental",
        ),
    ),
    (
        "Education",
        (
            "school",
            "university",
            "course",
            "book",
            "education",
            "tuition",
            "learning",
            "training",
        ),
    ),
)


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_hours: int,
        upload_dir: Path,
        week_start: int,
        category_keywords: tuple[tuple[str, tuple[str, ...]], ...],
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.upload_dir = upload_dir
        self.week_start = week_start
        self.category_keywords = category_keywords
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _parse_week_start(value: str) -> int:
    key = value.strip().lower()
    if key not in WEEKDAYS:
        raise ValueError(f"Unknown week start day: {value}")
    return WEEKDAYS[key]


def load_category_keywords(
    path: Optional[str],
) -> tuple[tuple[str, tuple[str, ...]], ...]:
    """Read an ordered keyword table from a JSON file of ``[category, [words]]`` pairs.

    Without a path the built-in table is returned. Keywords are lowercased so the
    categorizer can match against lowercased descriptions.
    """
    if not path:
        return DEFAULT_CATEGORY_KEYWORDS
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    table: list[tuple[str, tuple[str, ...]]] = []
    for entry in raw:
        category, keywords = entry
        table.append(
            (str(category), tuple(str(word).lower() for word in keywords if word))
        )
    return tuple(table)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    secret_key = os.getenv(
        "FINANCE_SECRET_KEY",
        "3f1c9a6e0b8d47a2b5e4c7d1f09a8e6b2c4d5f7a9e1b3c6d8f0a2b4c6e8d0f1a",
    )
    token_max_age_hours = int(os.getenv("FINANCE_TOKEN_MAX_AGE_HOURS", "168"))
    upload_dir = Path(
        os.getenv("FINANCE_UPLOAD_DIR", str(data_dir / "uploads"))
    ).resolve()
    upload_dir.mkdir(parents=True, exist_ok=True)
    week_start = _parse_week_start(os.getenv("FINANCE_WEEK_START", "sunday"))
    category_keywords = load_category_keywords(
        os.getenv("FINANCE_CATEGORY_KEYWORDS_FILE")
    )
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        upload_dir=upload_dir,
        week_start=week_start,
        category_keywords=category_keywords,
        log_level=log_level,
    )
