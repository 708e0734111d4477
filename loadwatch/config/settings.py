# loadwatch/config/settings.py

"""Central configuration for the loadwatch engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the loadwatch engine."""

    # --- Change monitoring ---
    DEBOUNCE_SECONDS: float = 0.3       # Quiet period after the last mutation
    REFRESH_INTERVAL: float = float(
        os.getenv("LOADWATCH_REFRESH_INTERVAL", "30")
    )                                   # Seconds between page refresh ticks

    # --- Action execution ---
    POLL_INTERVAL: float = 0.1          # Re-check interval for bounded waits
    SURFACE_TIMEOUT: float = 5.0        # Deadline for the booking surface
    CONFIRM_TIMEOUT: float = 5.0        # Deadline for the confirmation signal
    CLICK_SETTLE_DELAY: float = 0.3     # Pause before a simulated click
    CLICK_JITTER: float = 0.05          # +/- randomisation of the pause

    # --- Extraction ---
    MIN_ROW_COLUMNS: int = 5            # Tabular rows shorter than this are skipped

    # --- Form defaults (surface filling) ---
    FORM_PHONE: str = os.getenv("LOADWATCH_PHONE", "")
    FORM_EMAIL: str = os.getenv("LOADWATCH_EMAIL", "")

    # --- HTTP fetching (read-only monitoring) ---
    REQUEST_DELAY: float = 1.0          # Seconds between retries
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Retry count on transient failures
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Browser (live monitoring) ---
    BROWSER_HEADLESS: bool = (
        os.getenv("LOADWATCH_HEADLESS", "0") == "1"
    )
    NAVIGATION_TIMEOUT_MS: int = 30000

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    CONVENTIONS_PATH: Path = (
        BASE_DIR / "loadwatch" / "config" / "conventions.json"
    )
    STATE_PATH: Path = BASE_DIR / "state" / "loadwatch.json"
    LOGS_DIR: Path = BASE_DIR / "logs"
    LOG_RUNS_KEPT: int = int(os.getenv("LOADWATCH_LOG_RUNS", "20"))
    QUIET_LOGGERS: list[str] = ["asyncio", "urllib3", "charset_normalizer"]

    # --- Operating modes ---
    MODES: list[str] = ["alert", "search", "autobook"]
    DEFAULT_MODE: str = "search"
