from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Generative Language API base; model name and ":generateContent" are appended
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta/models", validation_alias="GEMINI_BASE_URL")
	# Tried in order until one answers (explain follow-up, transcription)
	gemini_fallback_models: List[str] = Field(
		default=["gemini-2.5-flash", "gemini-2.0-flash", "gemini-1.5-flash"],
		validation_alias="GEMINI_FALLBACK_MODELS",
	)
	gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")

	# OpenAI-compatible AI gateway used by performance analysis
	lovable_api_key: str | None = Field(default=None, validation_alias="LOVABLE_API_KEY")
	ai_gateway_url: str = Field(default="https://ai.gateway.lovable.dev/v1/chat/completions", validation_alias="AI_GATEWAY_URL")
	ai_gateway_model: str = Field(default="google/gemini-2.5-flash", validation_alias="AI_GATEWAY_MODEL")
	ai_gateway_timeout_seconds: float = Field(default=60.0, validation_alias="AI_GATEWAY_TIMEOUT_SECONDS")
	# Expected duration shown by the analysis loading screen
	analysis_expected_seconds: float = Field(default=20.0, validation_alias="ANALYSIS_EXPECTED_SECONDS")

	# Per-user secrets are AES-GCM encrypted with the first 32 bytes of this key
	app_encryption_key: str | None = Field(default=None, validation_alias="APP_ENCRYPTION_KEY")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed admin user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")
	# Auth sessions idle for longer than this are purged by the cleanup task
	session_retention_days: int = Field(default=30, validation_alias="SESSION_RETENTION_DAYS")

	# Audio storage (listening uploads); files are served under storage_public_base
	storage_dir: str = Field(default="./storage", validation_alias="STORAGE_DIR")
	storage_public_base: str = Field(default="/storage", validation_alias="STORAGE_PUBLIC_BASE")
	max_transcription_mb: int = Field(default=50, validation_alias="MAX_TRANSCRIPTION_MB")

	cors_origins: List[str] = Field(default=["*"], validation_alias="CORS_ORIGINS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
