import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from ledgerlens.logging_setup import get_logger

logger = get_logger(__name__)

BACKENDS = ("memory", "local")


@dataclass(frozen=True)
class Settings:
    app_id: str = "local-fallback"
    data_dir: Path = Path("data")
    backend: str = "local"
    log_level: str = "INFO"
    top_n: int = 5
    forecast_horizon: int = 12

    @property
    def local_only(self) -> bool:
        return self.backend == "local"


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", key, raw, default)
        return default
    if value < 1:
        logger.warning("Ignoring non-positive %s=%r, using %d", key, raw, default)
        return default
    return value


def load_settings(env: Optional[Mapping[str, str]] = None, *, dotenv: bool = True) -> Settings:
    """Build settings from ``LEDGERLENS_*`` variables (``.env`` included).

    An unknown backend degrades to the local-only JSON store.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    backend = env.get("LEDGERLENS_BACKEND", "local").strip().lower()
    if backend not in BACKENDS:
        logger.warning("Unknown backend %r; falling back to local-only mode", backend)
        backend = "local"

    return Settings(
        app_id=env.get("LEDGERLENS_APP_ID") or "local-fallback",
        data_dir=Path(env.get("LEDGERLENS_DATA_DIR") or "data"),
        backend=backend,
        log_level=env.get("LEDGERLENS_LOG_LEVEL") or "INFO",
        top_n=_int_setting(env, "LEDGERLENS_TOP_N", 5),
        forecast_horizon=_int_setting(env, "LEDGERLENS_FORECAST_HORIZON", 12),
    )
