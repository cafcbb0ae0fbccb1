import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    service_name: str = "yoga-wallet"
    log_level: str = "INFO"
    seed_demo_data: bool = False
    cors_origins: tuple[str, ...] = ("*",)
    api_root_path: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("WALLET_CORS_ORIGINS", "*")
        return cls(
            service_name=os.getenv("WALLET_SERVICE_NAME", cls.service_name),
            log_level=os.getenv("WALLET_LOG_LEVEL", cls.log_level).upper(),
            seed_demo_data=_env_bool("WALLET_SEED_DEMO_DATA"),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            api_root_path=os.getenv("WALLET_API_ROOT_PATH", cls.api_root_path),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
