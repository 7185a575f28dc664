from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/dentai.sqlite3"
    api_key: str = ""  # empty = no auth check (local dev)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    detector: str = "simulated"  # "simulated" | "openai"
    detector_latency_seconds: float = 0.0
    data_dir: str = "./data"
    max_image_size_bytes: int = 5 * 1024 * 1024  # 5MB
    cors_origins: list[str] = ["http://localhost:8000"]
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "DENTAI_"}


settings = Settings()
