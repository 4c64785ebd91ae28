"""
Configuration settings for the Chronicle agent.

Settings are read from environment variables prefixed with ``CHRONICLE_`` (or a
local ``.env`` file) through Pydantic's ``BaseSettings``, giving one validated
source of configuration for the workflow, the ledger and the read API.
"""
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChronicleSettings(BaseSettings):
    """
    Configuration model for the agent process.

    Attributes:
        agent_id: Identity the ledger chain and anchor are kept under.
        signing_secret: Key material for the HMAC record signer.
        max_history_before_summary: History length that triggers summarization.
        max_retained_queue_size: Hard cap on history length between summaries.
        max_steps: Ceiling on decision steps per workflow run.
    """

    model_config = SettingsConfigDict(env_prefix="CHRONICLE_", env_file=".env", extra="ignore")

    # Identity
    agent_id: str = "chronicle-agent"
    agent_version: str = "2.0.0"
    signing_secret: str = Field(default="change-me", repr=False)

    # Character
    character_name: str = "Chronicle"
    character_description: str = "An autonomous agent that keeps a permanent record of its experiences."
    character_personality: str = "Curious, concise and careful."
    custom_instructions: Optional[str] = None

    # Decision model
    model_provider: str = "openai"
    model_name: str = "gpt-4o"
    model_temperature: float = 0.8

    # Workflow
    thread_prefix: str = "orchestrator"
    max_steps: int = Field(default=25, ge=1)
    step_retries: int = Field(default=1, ge=0)
    max_history_before_summary: int = Field(default=30, ge=1)
    max_retained_queue_size: int = Field(default=50, ge=2)
    self_schedule: bool = True
    default_interval_seconds: float = 3600.0

    # Retry
    retry_attempts: int = Field(default=5, ge=1)
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_strategy: Literal["exponential", "fixed"] = "exponential"

    # Ledger storage
    storage_dir: str = "./data/storage"
    cache_dir: str = "./data/cache"
    hash_storage_dir: str = "./data/hashes"
    chain_path: str = "./data/chain.json"
    compression: bool = True
    encryption_password: Optional[str] = Field(default=None, repr=False)
    backfill_max_depth: int = Field(default=1000, ge=1)

    # Observability
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Read API
    api_host: str = "0.0.0.0"
    api_port: int = 8080


def get_settings() -> ChronicleSettings:
    """Build settings from the current environment"""
    return ChronicleSettings()
