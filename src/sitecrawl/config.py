from dotenv import load_dotenv
from pathlib import Path
from typing import List, Optional
import json
import os

from pydantic import BaseModel, Field, field_validator, model_validator

from sitecrawl.constants import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_REQUESTS_PER_MINUTE,
    DEFAULT_MIN_DELAY_MS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
    DEFAULT_ROBOTS_USER_AGENT,
    DEFAULT_USER_AGENT,
)

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    USER_AGENT = os.getenv("SITECRAWL_USER_AGENT", DEFAULT_USER_AGENT)
    LOG_LEVEL = os.getenv("SITECRAWL_LOG_LEVEL", "INFO")


settings = Settings()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class CrawlConfig(BaseModel):
    """
    Immutable per-job crawl configuration.

    Every field is validated by Pydantic so a bad budget or delay window is
    rejected before a crawl starts.
    """

    max_depth: int = Field(
        default=DEFAULT_MAX_DEPTH,
        description="Maximum link distance from the homepage",
        ge=0,
        le=20
    )

    max_pages: int = Field(
        default=DEFAULT_MAX_PAGES,
        description="Maximum number of URLs the frontier will accept",
        ge=1,
        le=100000
    )

    use_sitemap: bool = Field(
        default=True,
        description="Seed the frontier from the site's XML sitemap"
    )

    respect_robots_txt: bool = Field(
        default=True,
        description="Fetch robots.txt and drop disallowed URLs"
    )

    proxy_rotation: bool = Field(
        default=False,
        description="Rotate through proxy_list round-robin"
    )

    proxy_list: List[str] = Field(
        default_factory=list,
        description="Proxy URLs; entries without a scheme are treated as http://"
    )

    user_agent_rotation: bool = Field(
        default=True,
        description="Rotate the browser user agent per page"
    )

    user_agent: Optional[str] = Field(
        default=None,
        description="Fixed user agent used when rotation is disabled"
    )

    min_delay_ms: int = Field(
        default=DEFAULT_MIN_DELAY_MS,
        description="Lower bound of the randomized inter-request delay",
        ge=0
    )

    max_delay_ms: int = Field(
        default=DEFAULT_MAX_DELAY_MS,
        description="Upper bound of the randomized inter-request delay",
        ge=0
    )

    use_headless_browser: bool = Field(
        default=True,
        description="Render pages with headless Chromium; plain HTTP otherwise"
    )

    max_concurrency: int = Field(
        default=DEFAULT_MAX_CONCURRENCY,
        description="Number of concurrent page workers",
        ge=1,
        le=50
    )

    max_requests_per_minute: int = Field(
        default=DEFAULT_MAX_REQUESTS_PER_MINUTE,
        description="Dispatch cap over any trailing 60 second window",
        ge=1
    )

    navigation_timeout_ms: int = Field(
        default=DEFAULT_NAVIGATION_TIMEOUT_MS,
        description="Per-page navigation timeout in milliseconds",
        ge=1000,
        le=300000
    )

    network_idle_timeout_ms: int = Field(
        default=DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
        description="Upper bound on waiting for network idle after navigation",
        ge=0,
        le=300000
    )

    robots_user_agent: str = Field(
        default=DEFAULT_ROBOTS_USER_AGENT,
        description="Token matched against robots.txt User-agent groups"
    )

    allow_external: bool = Field(
        default=False,
        description="Follow links that leave the target domain"
    )

    class Config:
        """Pydantic model configuration."""
        frozen = True

    @field_validator("proxy_list", mode="before")
    @classmethod
    def _split_proxy_string(cls, value):
        if isinstance(value, str):
            return [p.strip() for p in value.split(",") if p.strip()]
        return value

    @model_validator(mode="after")
    def _check_delay_window(self) -> "CrawlConfig":
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= min_delay_ms ({self.min_delay_ms})"
            )
        return self

    @classmethod
    def from_env(cls) -> "CrawlConfig":
        """Load configuration from SITECRAWL_* environment variables.

        Returns:
            CrawlConfig: Configuration instance with values from environment
        """
        return cls(
            max_depth=int(os.getenv("SITECRAWL_MAX_DEPTH", str(DEFAULT_MAX_DEPTH))),
            max_pages=int(os.getenv("SITECRAWL_MAX_PAGES", str(DEFAULT_MAX_PAGES))),
            use_sitemap=_env_bool("SITECRAWL_USE_SITEMAP", True),
            respect_robots_txt=_env_bool("SITECRAWL_RESPECT_ROBOTS_TXT", True),
            proxy_rotation=_env_bool("SITECRAWL_PROXY_ROTATION", False),
            proxy_list=os.getenv("SITECRAWL_PROXY_LIST", ""),
            user_agent_rotation=_env_bool("SITECRAWL_USER_AGENT_ROTATION", True),
            user_agent=os.getenv("SITECRAWL_USER_AGENT"),
            min_delay_ms=int(os.getenv("SITECRAWL_MIN_DELAY_MS", str(DEFAULT_MIN_DELAY_MS))),
            max_delay_ms=int(os.getenv("SITECRAWL_MAX_DELAY_MS", str(DEFAULT_MAX_DELAY_MS))),
            use_headless_browser=_env_bool("SITECRAWL_USE_HEADLESS_BROWSER", True),
            max_concurrency=int(os.getenv("SITECRAWL_MAX_CONCURRENCY", str(DEFAULT_MAX_CONCURRENCY))),
            max_requests_per_minute=int(
                os.getenv("SITECRAWL_MAX_REQUESTS_PER_MINUTE", str(DEFAULT_MAX_REQUESTS_PER_MINUTE))
            ),
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "CrawlConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to JSON config file

        Returns:
            CrawlConfig: Configuration instance
        """
        with open(config_path) as f:
            data = json.load(f)
        return cls(**data)
