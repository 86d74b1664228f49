from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    ENV: str = "dev"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    VIDEO_DIR: str = "videos"             # resource root on disk
    VIDEO_BASE_URL: str = "/video"        # URL prefix videos are served from
    PUBLIC_DIR: str = "public"            # static assets, mounted at / when present
    STREAM_CHUNK_SIZE: int = 64 * 1024

    DELAY_MS_PER_SECOND_JUMP: int = 500
    MAX_DELAY_MS: int = 10_000

    AUTH_REQUIRED: bool = True
    AUTH_POLICY: str = "presence"         # "presence" | "hmac"
    TOKEN_SECRET: str = ""
    TOKEN_QUERY_PARAM: str = "st"

    BITRATE_PROBE: str = "fixed"          # "fixed" | "ffprobe"
    FALLBACK_BYTES_PER_SEC: float = 1_000_000
    FFPROBE_BIN: str = "ffprobe"

    SESSION_STORE: str = "memory"         # "memory" | "lru"
    SESSION_MAX_CLIENTS: int = 10_000
    SESSION_TTL_SECONDS: float = 3600


settings = Settings()
