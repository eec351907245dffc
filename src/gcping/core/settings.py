from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, validator
from urllib.parse import urlparse
import logging


class Settings(BaseSettings):
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    GCP_PROJECT: str = Field(..., description="Project that hosts the ping servers")
    GCP_ACCESS_TOKEN: Optional[str] = Field(
        default=None,
        description="OAuth access token for the Compute and Storage APIs"
    )
    DATABASE_URL: str = Field(
        default="sqlite:///data/gcping.db",
        description="Database connection string"
    )
    REGION_SOURCE: str = Field(
        default="static",
        description="Where desired regions come from: 'static' file or 'live' provider query"
    )
    REGIONS_FILE: str = Field(
        default="regions.txt",
        description="Static region list, one region id per line"
    )
    CONCURRENCY: int = Field(
        default=4,
        description="Maximum number of regions provisioned at the same time"
    )
    SOFT_DEADLINE: float = Field(
        default=900.0,
        description="Seconds to wait for region workers before reporting them as pending"
    )
    RETRY_ATTEMPTS: int = Field(
        default=5,
        description="Attempts for provider calls that fail with an unavailable error"
    )
    RETRY_MAX_WAIT: float = Field(
        default=30.0,
        description="Upper bound in seconds for a single backoff wait"
    )
    CONTAINER_IMAGE: Optional[str] = Field(
        default=None,
        description="Ping server container image deployed to every region"
    )
    MACHINE_TYPE: str = Field(default="f1-micro", description="Instance machine type")
    NETWORK: str = Field(default="network", description="VPC network name")
    SUBNET: str = Field(default="subnet", description="Per-region subnet name")
    ZONE_SUFFIX: str = Field(
        default="-b",
        description="Suffix appended to a region id to pick the instance zone"
    )
    BUCKET: str = Field(
        default="www.gcping.com",
        description="Bucket that serves the static client page"
    )
    CONFIG_DIR: str = Field(
        default=".",
        description="Directory the config documents are written to"
    )
    ASSETS_DIR: Optional[str] = Field(
        default=None,
        description="Optional directory holding index.html and icon.png"
    )

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {', '.join(valid_levels)}")
        return v

    def get_log_level(self) -> int:
        """Convert string log level to logging constant"""
        return getattr(logging, self.LOG_LEVEL)

    @validator('DATABASE_URL')
    def validate_database_url(cls, v):
        result = urlparse(v)
        if result.scheme not in ("sqlite", "postgresql"):
            raise ValueError("Unsupported database scheme. Use 'sqlite' or 'postgresql'.")
        return v

    @validator('REGION_SOURCE')
    def validate_region_source(cls, v):
        v = v.lower()
        if v not in ("static", "live"):
            raise ValueError("REGION_SOURCE must be 'static' or 'live'")
        return v

    @validator('CONCURRENCY', 'RETRY_ATTEMPTS')
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @validator('SOFT_DEADLINE', 'RETRY_MAX_WAIT')
    def validate_positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("Value must be greater than zero")
        return v

    def validate_deploy(self):
        """Validate the settings needed to create instances"""
        if not self.CONTAINER_IMAGE:
            raise ValueError("CONTAINER_IMAGE must be configured to create instances")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
