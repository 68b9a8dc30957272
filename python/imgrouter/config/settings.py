from typing import List, Optional, Union, Any
import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from imgrouter.constants import (
    DEFAULT_REQUEST_TIMEOUT, IMAGE_FETCH_TIMEOUT, MAX_IMAGE_BYTES,
    TASK_POLL_INTERVAL, TASK_MAX_POLL_ATTEMPTS, DEFAULT_TASK_TYPE, DEFAULT_UPLOAD_FIELD,
)
from imgrouter.errors.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


def _split_csv(v: Union[str, List[str]]) -> List[str]:
    """Parse comma-separated string into a list."""
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class ImageInputMode(str, Enum):
    """How caller-supplied images are forwarded upstream."""
    PASSTHROUGH = "passthrough"
    FETCH_TO_BASE64 = "fetch_to_base64"


class ImageBase64Format(str, Enum):
    """Which encoded form is forwarded when images are fetched."""
    DATA_URL = "data_url"
    RAW_BASE64 = "raw_base64"


class HttpSettings(BaseModel):
    host: str = Field("0.0.0.0", description="Host address to bind the server to")
    port: int = Field(8000, description="Port to bind the server to")
    workers: int = Field(1, description="Number of worker processes")
    cors_allow_origins: List[str] = Field(
        ["*"], description="List of origins that are allowed to make cross-origin requests"
    )
    cors_allow_methods: List[str] = Field(
        ["POST", "OPTIONS"],
        description="List of HTTP methods that are allowed for CORS"
    )
    cors_allow_headers: List[str] = Field(
        ["Authorization", "Content-Type"],
        description="List of HTTP headers that are allowed for CORS"
    )
    cors_max_age: int = Field(86400, description="Seconds a preflight response may be cached")

    @field_validator("cors_allow_origins", "cors_allow_methods", "cors_allow_headers", mode="before")
    @classmethod
    def validate_comma_separated_list(cls, v: Union[str, List[str]]) -> List[str]:
        return _split_csv(v)


class TelemetrySettings(BaseModel):
    enabled: bool = Field(False, description="Whether to enable tracing")
    otlp_endpoint: Optional[str] = Field(None, description="OpenTelemetry collector endpoint")
    service_name: str = Field("imgrouter", description="Service name for telemetry")


class ImageSettings(BaseModel):
    fetch_timeout: float = Field(IMAGE_FETCH_TIMEOUT, gt=0, description="Seconds allowed for one image fetch")
    max_bytes: int = Field(MAX_IMAGE_BYTES, gt=0, description="Byte ceiling for a single image")
    allow_private_network: bool = Field(
        False, description="Allow fetching images from localhost and private networks"
    )
    input_mode: ImageInputMode = Field(ImageInputMode.FETCH_TO_BASE64, description="Default image input mode")
    base64_format: ImageBase64Format = Field(ImageBase64Format.DATA_URL, description="Default base64 form")


class ProviderSettings(BaseModel):
    """Upstream endpoint and model defaults for one provider."""
    api_url: str
    default_model: str
    supported_models: List[str] = Field(default_factory=list)
    default_size: str = "2048x2048"
    image_input_mode: Optional[ImageInputMode] = None
    image_base64_format: Optional[ImageBase64Format] = None

    @field_validator("supported_models", mode="before")
    @classmethod
    def validate_models(cls, v: Union[str, List[str]]) -> List[str]:
        return _split_csv(v)


class VolcengineSettings(ProviderSettings):
    api_url: str = "https://ark.cn-beijing.volces.com/api/v3/images/generations"
    default_model: str = "doubao-seedream-4-0-250828"
    supported_models: List[str] = Field(
        default_factory=lambda: ["doubao-seedream-4-0-250828", "doubao-seedream-3-0-t2i-250415"]
    )
    default_size: str = "4096x4096"


class GiteeSettings(ProviderSettings):
    api_url: str = "https://ai.gitee.com/v1/images/generations"
    default_model: str = "Qwen-Image"
    supported_models: List[str] = Field(default_factory=lambda: ["Qwen-Image", "FLUX.1-dev", "Kolors"])


class ModelScopeSettings(ProviderSettings):
    api_url: str = Field("https://api-inference.modelscope.cn/v1", description="API root; job paths are appended")
    default_model: str = "Qwen/Qwen-Image"
    supported_models: List[str] = Field(
        default_factory=lambda: ["Qwen/Qwen-Image", "Qwen/Qwen-Image-Edit", "MusePublic/489_ckpt_FLUX_1"]
    )
    task_type: str = Field(DEFAULT_TASK_TYPE, description="Task-type discriminator header value; empty disables it")
    upload_field: str = Field(DEFAULT_UPLOAD_FIELD, description="Multipart field carrying the edit image")
    poll_interval: float = Field(TASK_POLL_INTERVAL, ge=0)
    max_poll_attempts: int = Field(TASK_MAX_POLL_ATTEMPTS, gt=0)


class Settings(BaseSettings):
    """Main application settings class that combines all sub-settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    # Basic settings
    environment: str = Field("development", description="Application environment")
    log_level: str = Field("INFO", description="Logging level")
    config_path: Optional[str] = Field(None, description="Path to YAML configuration file")

    # Upstream behaviour
    api_timeout: float = Field(DEFAULT_REQUEST_TIMEOUT, gt=0, description="Seconds allowed per upstream call")
    enforce_supported_models: bool = Field(
        False, description="Fall back to the provider default when a requested model is not listed"
    )

    # Component settings
    http: HttpSettings = Field(default_factory=HttpSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    image: ImageSettings = Field(default_factory=ImageSettings)

    # Providers
    volcengine: VolcengineSettings = Field(default_factory=VolcengineSettings)
    gitee: GiteeSettings = Field(default_factory=GiteeSettings)
    modelscope: ModelScopeSettings = Field(default_factory=ModelScopeSettings)

    @classmethod
    def load(cls, **overrides: Any) -> "Settings":
        """Load settings from environment variables and an optional YAML file.

        Values from the YAML file named by ``config_path`` take precedence over
        the environment; explicit ``overrides`` win over both.
        """
        settings = cls(**overrides)

        if not settings.config_path:
            return settings

        config_path = Path(settings.config_path)
        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}")
            return settings

        import yaml
        with open(config_path, "r", encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file must hold a mapping: {config_path}")

        merged = {**file_config, **overrides, "config_path": settings.config_path}
        return cls(**merged)
