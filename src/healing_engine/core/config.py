from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv

load_dotenv(".env")


class Settings(BaseSettings):
    # LLM Configuration
    MODEL_PROVIDER: str = "online"  # "online" for litellm-backed cloud models, "local" for Ollama
    GEMINI_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    ONLINE_MODEL: str = "gemini/gemini-2.5-flash"
    LOCAL_MODEL: str = "llama3"
    OLLAMA_BASE_URL: str = Field(default="http://localhost:11434", description="Base URL of the local Ollama daemon")
    LLM_TIMEOUT: float = Field(default=60.0, description="Timeout for a single selector generation request (in seconds)")

    # Service Configuration
    APP_PORT: int = Field(default=3001, description="Port for the healing service")

    # Healing Configuration
    SELF_HEALING_ENABLED: bool = Field(default=True, description="Global switch for selector healing")
    SELF_HEALING_CONFIG_PATH: str = Field(default="config/self_healing.yaml", description="Path to the healing YAML configuration")
    LOCATORS_DIR: str = Field(default="locators", description="Directory holding <page>.locators.json files")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_DIR: str = Field(default="logs", description="Directory for rotating log files")
    AUDIT_DIR: str = Field(default="logs/audit", description="Directory for healing audit records")

    @validator('MODEL_PROVIDER')
    def validate_model_provider(cls, v):
        """Normalize MODEL_PROVIDER to 'online' or 'local'."""
        aliases = {"online": "online", "cloud": "online", "openai": "online",
                   "local": "local", "ollama": "local"}
        key = v.lower().strip()
        if key not in aliases:
            raise ValueError(f"MODEL_PROVIDER must be 'online' or 'local', got '{v}'")
        return aliases[key]

    @validator('LLM_TIMEOUT')
    def validate_llm_timeout(cls, v):
        """Validate that LLM_TIMEOUT is positive."""
        if v <= 0:
            raise ValueError(f"LLM_TIMEOUT must be positive, got {v}")
        return v

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Validate LOG_LEVEL against the standard level names."""
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got '{v}'")
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'allow'  # Allow extra fields from .env file

settings = Settings()
