# ============================================================
# asqli - AI-assisted SQL terminal client
# config.py - Central Configuration Management
# ============================================================

import os
from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env next to the sources first, then the one in the working directory
BASE_DIR = Path(__file__).parent
load_dotenv(BASE_DIR / ".env")
load_dotenv()

DRIVER_ALIASES = {
    "postgres": "postgres",
    "postgresql": "postgres",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}

DEFAULT_PORTS = {
    "postgres": 5432,
    "mysql": 3306,
}

PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


class DatabaseConfig(BaseSettings):
    """Target database. A connection string, when set, wins over the parts."""
    model_config = SettingsConfigDict(env_prefix="ASQLI_DB_", extra="ignore")

    driver: str = Field(default="postgres")
    connection: str = Field(default="")
    host: str = Field(default="localhost")
    port: Optional[int] = Field(default=None)
    user: str = Field(default="")
    password: str = Field(default="")
    name: str = Field(default="")
    sslmode: str = Field(default="disable")
    file: str = Field(default="")

    @property
    def driver_type(self) -> str:
        return DRIVER_ALIASES.get(self.driver.strip().lower(), self.driver.strip().lower())

    @property
    def resolved_port(self) -> Optional[int]:
        return self.port or DEFAULT_PORTS.get(self.driver_type)

    def describe(self) -> str:
        """Human readable target, never including the password."""
        if self.driver_type == "sqlite":
            return self.file or self.connection or self.name or "(no file)"
        if self.connection:
            return f"{self.driver_type} (connection string)"
        return f"{self.user or '?'}@{self.host}:{self.resolved_port}/{self.name}"


class AIConfig(BaseSettings):
    """AI provider used to turn prompts into SQL."""
    model_config = SettingsConfigDict(env_prefix="ASQLI_AI_", extra="ignore")

    provider: str = Field(default="openai")
    model: str = Field(default="")
    api_key: str = Field(default="")
    base_url: str = Field(default="")
    temperature: float = Field(default=0.0)
    max_tokens: int = Field(default=1024)

    def resolved_api_key(self) -> str:
        if self.api_key:
            return self.api_key
        env_name = PROVIDER_KEY_ENV.get(self.provider.lower())
        return os.getenv(env_name, "") if env_name else ""


class TimeoutConfig(BaseSettings):
    """Per-operation deadlines in seconds."""
    model_config = SettingsConfigDict(env_prefix="ASQLI_TIMEOUT_", extra="ignore")

    connection: float = Field(default=10.0, gt=0)
    query: float = Field(default=30.0, gt=0)
    schema_fetch: float = Field(default=30.0, gt=0)
    ai_generation: float = Field(default=60.0, gt=0)


class AppConfig(BaseSettings):
    """Application-level configuration."""
    model_config = SettingsConfigDict(env_prefix="ASQLI_", extra="ignore")

    name: str = Field(default="asqli")
    version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="~/.asqli/asqli.log")
    history_file: str = Field(default="~/.sqlai_history")
    max_query_history: int = Field(default=5, ge=1)
    max_column_width: int = Field(default=50, ge=4)

    @property
    def history_path(self) -> Path:
        return Path(self.history_file).expanduser()


# ── Singleton Config Instances ────────────────────────────────
db_config = DatabaseConfig()
ai_config = AIConfig()
timeout_config = TimeoutConfig()
app_config = AppConfig()
