"""Configuration management for fixladder."""

from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EscalationConfig(BaseModel):
    """Rules for how the escalation ladder behaves.

    Attributes:
        max_retries: Attempts allowed at the retry level before moving on
        max_total_attempts: Attempts allowed overall before handing to a human
        auto_escalate_critical: Critical errors skip the retry level
        skip_agent_for_simple: Simple errors (auto-fixable, low severity) that
            exhaust their retries go to a specialist instead of agent_fix
        include_full_context: Attach the full error context to human tickets
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    max_retries: int = Field(3, ge=1, alias="maxRetries")
    max_total_attempts: int = Field(5, ge=1, alias="maxTotalAttempts")
    auto_escalate_critical: bool = Field(True, alias="autoEscalateCritical")
    skip_agent_for_simple: bool = Field(False, alias="skipAgentForSimple")
    include_full_context: bool = Field(True, alias="includeFullContext")

    def merged(self, overrides: Optional[dict[str, Any]] = None) -> "EscalationConfig":
        """Return a copy with a partial set of fields replaced.

        Accepts both snake_case and camelCase keys.
        """
        if not overrides:
            return self
        aliases = {
            info.alias: name
            for name, info in EscalationConfig.model_fields.items()
            if info.alias
        }
        data = self.model_dump()
        data.update({aliases.get(key, key): value for key, value in overrides.items()})
        return EscalationConfig.model_validate(data)


DEFAULT_ESCALATION_CONFIG = EscalationConfig()

# A full config, a partial override dict, or None for defaults
ConfigLike = Union[EscalationConfig, dict[str, Any], None]


def resolve_config(config: ConfigLike) -> EscalationConfig:
    """Normalize the ``config`` argument accepted by the engine functions.

    ``None`` means defaults; a dict is treated as a partial override of the
    defaults.
    """
    if config is None:
        return DEFAULT_ESCALATION_CONFIG
    if isinstance(config, EscalationConfig):
        return config
    return DEFAULT_ESCALATION_CONFIG.merged(config)


class LadderSettings(BaseSettings):
    """Environment-driven defaults, read from ``FIXLADDER_*`` variables."""

    max_retries: int = 3
    max_total_attempts: int = 5
    auto_escalate_critical: bool = True
    skip_agent_for_simple: bool = False
    include_full_context: bool = True

    # Logging configuration
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="FIXLADDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v_upper

    def to_escalation_config(self) -> EscalationConfig:
        """Build the ladder configuration from these settings."""
        return EscalationConfig(
            max_retries=self.max_retries,
            max_total_attempts=self.max_total_attempts,
            auto_escalate_critical=self.auto_escalate_critical,
            skip_agent_for_simple=self.skip_agent_for_simple,
            include_full_context=self.include_full_context,
        )


def load_environment(env_file: str = ".env") -> None:
    """Load environment variables from a .env file, if it exists.

    Args:
        env_file: Path to .env file (default: .env in current directory)
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
