from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration settings"""

    # Application
    app_name: str = "Gyana Spandana"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./spandana.db"

    # OpenAI (admin assistant)
    openai_api_key: str = ""
    assistant_model: str = "gpt-3.5-turbo"
    assistant_temperature: float = 0.7
    assistant_max_tokens: int = 1000
    assistant_history_limit: int = 10

    # Security (tokens are issued by the auth provider and verified here)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # CORS
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Exam session
    autosave_debounce_seconds: int = 2
    submit_grace_seconds: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
