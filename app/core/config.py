"""Configuration management for the project assistant tool engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required, embeddings)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Environment
    APP_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")

    # Agent orchestration
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    AGENT_MODEL: str = Field(
        default="claude-3-5-haiku-20241022", description="Model used by the inbound agent loop"
    )
    AGENT_MAX_TOKENS: int = Field(default=1024, description="Max tokens per agent reply")
    AGENT_MAX_TOOL_TURNS: int = Field(
        default=5, description="Max tool-use round trips per inbound message"
    )
    AGENT_ORCHESTRATOR_NAME: str = Field(
        default="inbound-agent", description="Orchestrator name stamped on tool request metadata"
    )

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")
    KNOWLEDGE_MATCH_COUNT: int = Field(default=5, description="Default knowledge lookup size")

    # Chat session TTLs per channel
    SESSION_TTL_WEB_MINUTES: int = Field(default=60, description="Web session lifetime")
    SESSION_TTL_SMS_MINUTES: int = Field(default=24 * 60, description="SMS session lifetime")
    SESSION_TTL_EMAIL_MINUTES: int = Field(
        default=7 * 24 * 60, description="Email session lifetime"
    )

    # Action approval policy
    DEFAULT_REMINDER_DAYS: int = Field(
        default=7, description="Reminder offset when days_until_check is omitted"
    )
    AUTO_APPROVED_ACTION_TYPES: list[str] = Field(
        default_factory=lambda: ["set_future_reminder"],
        description="Action types created with requires_approval=false and executed immediately",
    )
    PROTECTED_PROJECT_FIELDS: list[str] = Field(
        default_factory=lambda: ["id", "company_id", "crm_id", "created_at", "embedding"],
        description="Project columns a data_update action may never touch",
    )

    # Phone canonicalization
    DEFAULT_PHONE_REGION: str = Field(
        default="US", description="Region used to parse numbers without a country code"
    )

    # Tool transport
    TOOL_TRANSPORT: str = Field(
        default="local", description="local (in-process handlers) or http (remote tool functions)"
    )
    TOOL_BASE_URL: str | None = Field(
        default=None, description="Base URL of the remote tool functions when TOOL_TRANSPORT=http"
    )
    TOOL_HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, description="Remote tool call timeout")

    # Outbound SMS (Twilio)
    TWILIO_ACCOUNT_SID: str | None = Field(default=None, description="Twilio account SID")
    TWILIO_AUTH_TOKEN: str | None = Field(default=None, description="Twilio auth token")
    TWILIO_FROM_NUMBER: str | None = Field(default=None, description="Agent sender number")
    TWILIO_VALIDATE_SIGNATURE: bool = Field(
        default=True, description="Verify X-Twilio-Signature on inbound SMS when an auth token is set"
    )

    # Outbound email (Resend)
    RESEND_API_KEY: str | None = Field(default=None, description="Resend API key")
    RESEND_FROM_EMAIL: str = Field(
        default="assistant@example.com", description="Sender address for outbound email"
    )
    RESEND_FROM_NAME: str = Field(default="Project Assistant", description="Sender display name")

    # Inbound email webhook
    INBOUND_EMAIL_WEBHOOK_SECRET: str | None = Field(
        default=None, description="HMAC secret for inbound email webhook signatures"
    )

    # Escalations
    ESCALATION_NOTIFY_EMAILS: list[str] = Field(
        default_factory=list, description="Addresses emailed when an escalation is raised"
    )

    # Integration job queue
    INTEGRATION_JOB_BATCH_SIZE: int = Field(default=10, description="Jobs claimed per poll")
    INTEGRATION_JOB_MAX_RETRIES: int = Field(default=5, description="Retries before failing")
    INTEGRATION_JOB_POLL_SECONDS: int = Field(default=30, description="Worker poll interval")
    INTEGRATION_WORKER_ENABLED: bool = Field(
        default=False, description="Run the integration job worker inside the API process"
    )

    # Project reminder sweep
    REMINDER_BATCH_SIZE: int = Field(default=20, description="Due projects checked per sweep")
    REMINDER_POLL_SECONDS: int = Field(default=300, description="Reminder sweep interval")
    REMINDER_WORKER_ENABLED: bool = Field(
        default=False, description="Run the reminder sweep inside the API process"
    )

    # Inbound rate limiting
    INBOUND_RATE_LIMIT_PER_MINUTE: int = Field(
        default=20, description="Inbound messages per channel identifier per minute"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
