from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    app_name: str = "PlantCare Detection API"
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]  # For demo only; restrict in production.
    log_level: str = "INFO"

    # Every path listed here is tried; missing ones are skipped at load time.
    model_paths: list[Path] = [_PROJECT_ROOT / "trained_models" / "plant_disease_model"]
    device: str = "cpu"
    num_classes: int = 14

    image_size: int = 224
    brightness_delta: float = 0.1
    darken_factor: float = 0.9
    contrast_factor: float = 1.1

    top_k: int = 5
    min_confidence: float = 0.001

    high_confidence: float = 0.90
    high_validation_score: float = 85.0
    medium_confidence: float = 0.70
    medium_validation_score: float = 70.0
    ambiguity_margin: float = 0.10

    upload_dir: Path = _PROJECT_ROOT / "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    max_batch_files: int = 10

    class Config:
        env_file = ".env"
        env_prefix = "PLANTCARE_"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
