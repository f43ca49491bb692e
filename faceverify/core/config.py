"""Configuration settings for the face verification service."""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        RECOGNITION_MODEL: Name of the model profile used to produce embeddings
        DISTANCE_METRIC: Metric used by the matcher (cosine, euclidean, euclidean_l2)
        ALIGNMENT_TOLERANCE_DEGREES: Eye-line tilt below which rotation is skipped
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",  # No prefix for environment variables
        env_nested_delimiter="__"  # Use double underscore for nested settings
    )

    # Core Settings
    ENVIRONMENT: str = "development"

    # Detection Settings
    MODEL_CACHE_DIR: str = ".model_cache"
    DETECTOR_MODEL_FILE: str = "buffalo_l/det_10g.onnx"
    DETECTION_SIZE: int = 640
    MIN_FACE_CONFIDENCE: float = 0.5
    MAX_FACES_PER_IMAGE: int = 20
    MAX_IMAGE_PIXELS: int = 1920 * 1080  # ~2MP (Full HD)

    # Recognition Settings
    RECOGNITION_MODEL: str = "ArcFace"
    DISTANCE_METRIC: str = "cosine"
    MODEL_PROFILES_FILE: Optional[str] = None
    INFERENCE_PROVIDERS: List[str] = ["CPUExecutionProvider"]

    # Alignment Settings
    ALIGNMENT_TOLERANCE_DEGREES: float = 10.0
    ALIGNMENT_MARGIN: float = 0.10

    # Pipeline Settings
    FACE_SELECTION_POLICY: str = "highest_confidence"
    REPRESENT_MODE: str = "all"
    MAX_MATCHES: int = 100
    INDEX_ALL_FACES: bool = False

    # Resource Settings
    DECODE_TIMEOUT_SECONDS: float = 10.0
    INFERENCE_TIMEOUT_SECONDS: float = 30.0
    INFERENCE_MAX_RETRIES: int = 2
    INFERENCE_RETRY_BACKOFF_SECONDS: float = 0.1
    MAX_CONCURRENCY: int = 4

    # Storage Settings
    EMBEDDING_STORE_PATH: str = "embeddings.jsonl"

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"


settings = Settings()
