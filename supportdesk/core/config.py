from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field
from typing import Optional
import secrets

class Settings(BaseSettings):
    # ----------------------------------
    # App General Info
    # ----------------------------------
    PROJECT_NAME: str = "Support Desk"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = Field(
        default="development",
        description="Current environment: development, testing, staging, or production"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    # ----------------------------------
    # Relational Database (tickets, comments, sessions, chat, activities)
    # ----------------------------------
    DATABASE_URL: str = Field(default="sqlite:///./supportdesk.db")

    # ----------------------------------
    # Chat widget
    # ----------------------------------
    CHAT_ENABLED: bool = Field(default=True, description="Disable to reject new chat messages with 403")
    CHAT_WELCOME_MESSAGE: str = Field(default="Hi! How can I help you today?")
    CHAT_ESCALATION_THRESHOLD: int = Field(
        default=3,
        ge=1,
        description="Number of assistant replies after which the widget offers to open a ticket.",
    )
    CHAT_HISTORY_LIMIT: int = Field(default=10, ge=1, description="Prior messages passed to the model")
    CHAT_SUBJECT_MAX_LENGTH: int = Field(default=100, ge=1, description="Hand-off ticket subject length")
    CHAT_COMPANY_NAME: Optional[str] = Field(default=None)
    CHAT_TONE: str = Field(default="professional", description="professional | friendly | casual")
    CHAT_SYSTEM_INSTRUCTIONS: Optional[str] = Field(default=None, description="Extra prompt instructions")
    CHAT_FALLBACK_MESSAGE: str = Field(
        default=(
            "I apologize, but I encountered an error. "
            "Please try again or create a support ticket for assistance."
        ),
        description="Returned to the requester when the model call fails.",
    )

    # ----------------------------------
    # GCP & Vertex AI Settings (primary provider)
    # ----------------------------------
    GCP_PROJECT_ID: str = Field(default="your-project-id", description="Google Cloud Project ID")
    GCP_LOCATION: str = Field(default="us-central1", description="GCP region for Vertex AI")

    # ----------------------------------
    # Optional fallback keys
    # ----------------------------------
    GROQ_API_KEY: Optional[str] = Field(default=None, description="API Key for Groq Cloud (fallback)")

    # ----------------------------------
    # LLM Models (Vertex primary, Groq fallback)
    # ----------------------------------
    VERTEX_LLM_MODEL: str = Field(
        default="gemini-2.5-flash",
        description="Vertex AI chat model name (primary).",
    )
    GROQ_FALLBACK_MODEL: str = Field(
        default="llama3-70b-8192",
        validation_alias=AliasChoices("GROQ_FALLBACK_MODEL", "MAIN_LLM_MODEL"),
        description="Groq chat model name (fallback). Falls back to MAIN_LLM_MODEL for backward compatibility.",
    )
    LLM_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout (seconds) for LLM requests (Vertex/Groq). A timeout counts as a failed generation.",
    )
    LLM_MAX_OUTPUT_TOKENS: int = Field(default=500)

    # ----------------------------------
    # Agent work sessions
    # ----------------------------------
    AGENT_SESSION_CLOSE_PREVIOUS: bool = Field(
        default=True,
        description="Close an agent's earlier open sessions when a new one starts.",
    )
    AGENT_SESSION_STALE_HOURS: int = Field(
        default=24,
        ge=1,
        description="Open sessions older than this are closed by the cleanup endpoint.",
    )

    # ----------------------------------
    # Auth (JWT)
    # ----------------------------------
    JWT_SECRET_KEY: str = Field(
        default_factory=lambda: secrets.token_urlsafe(48),
        description="JWT signing secret. Set in .env for stable sessions.",
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24)

    # ----------------------------------
    # Admin bootstrap (optional)
    # ----------------------------------
    ADMIN_BOOTSTRAP_EMAIL: Optional[str] = Field(default=None, description="Create/update this admin user on startup")
    ADMIN_BOOTSTRAP_PASSWORD: Optional[str] = Field(default=None, description="Admin password used on startup bootstrap")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
