import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

if os.getenv("APP_ENV", "dev") == "dev":
    load_dotenv()

_ROOT = Path(__file__).resolve().parent


class Settings(BaseSettings):
    APP_ENV: str = Field(default="dev", validation_alias="APP_ENV")

    # Line reconstruction / section scanning
    LINE_TOLERANCE: float = Field(default=3.0, ge=0, validation_alias="LINE_TOLERANCE")
    SECTION_MAX_LINES: int = Field(default=200, ge=1, validation_alias="SECTION_MAX_LINES")

    # Orchestrator
    CACHE_TTL_SECONDS: int = Field(default=3600, ge=0, validation_alias="CACHE_TTL_SECONDS")
    MAX_WORKERS: int = Field(default=4, ge=1, validation_alias="MAX_WORKERS")
    PARALLEL_EXTRACTION: bool = Field(default=False, validation_alias="PARALLEL_EXTRACTION")
    FETCH_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0, validation_alias="FETCH_TIMEOUT_SECONDS")

    # Data files
    RULES_DIR: str = Field(default=str(_ROOT / "rules"), validation_alias="RULES_DIR")
    REFERENCE_PATH: str = Field(
        default=str(_ROOT / "reference" / "market_share.yaml"),
        validation_alias="REFERENCE_PATH",
    )
    SNAPSHOT_PATH: str = Field(
        default="output/market-share-aggregated.json", validation_alias="SNAPSHOT_PATH"
    )

    # Logging knobs
    LOGGER_NAME: str = "loanbook-extract"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="extract.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(default=10 * 1024 * 1024, validation_alias="LOG_MAX_BYTES")
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
