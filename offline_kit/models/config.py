"""
Pydantic models for cache, queue and application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

from offline_kit.utils.duration import parse_duration

STORAGE_BACKENDS = ("auto", "memory", "file", "sqlite")


class CacheOptions(BaseModel):
    """
    Per-call cache policy. Durations are normalised to milliseconds, so
    ``CacheOptions(ttl="1h").ttl == 3_600_000``.
    """

    ttl: int | None = None
    stale_while_revalidate: bool = False
    max_stale: int | None = None
    tags: list[str] | None = None

    class Config:
        """Pydantic model configuration."""

        extra = "forbid"

    @field_validator("ttl", "max_stale", mode="before")
    @classmethod
    def parse_durations(cls, v: int | str | None) -> int | None:
        """Accepts milliseconds or duration strings such as '30s' or '7d'."""
        return parse_duration(v)

    def merged(self, **overrides) -> "CacheOptions":
        """Returns a copy with every non-None override applied and validated."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CacheOptions(**values)


class SyncQueueOptions(BaseModel):
    """Dispatch and retry policy for a SyncQueue."""

    max_retries: int = 5
    # Stored and validated only; retries are paced by the caller's sync() calls.
    retry_delay: int = 1000
    max_retry_delay: int = 60000
    concurrency: int = 3
    auto_sync: bool = True

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """A record needs at least one attempt before it can be marked failed."""
        if v < 1:
            raise ValueError("max_retries must be at least 1.")
        return v

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of concurrent dispatches."""
        if v < 1 or v > 64:
            raise ValueError("concurrency must be between 1 and 64.")
        return v

    @field_validator("retry_delay", "max_retry_delay", mode="before")
    @classmethod
    def parse_delays(cls, v: int | str) -> int:
        parsed = parse_duration(v)
        return 0 if parsed is None else parsed

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> "SyncQueueOptions":
        if self.max_retry_delay < self.retry_delay:
            raise ValueError("max_retry_delay cannot be smaller than retry_delay.")
        return self


class OfflineConfig(BaseModel):
    """A validated configuration model for the application."""

    # Storage
    storage_backend: str = "auto"
    storage_path: str = ""

    # Cache policy
    cache_prefix: str = "cache:"
    default_ttl: int | None = None
    max_stale: int | None = None
    serve_stale: bool = True

    # Sync queue
    queue_prefix: str = "sync:"
    max_retries: int = 5
    retry_delay: int = 1000
    max_retry_delay: int = 60000
    concurrency: int = 3
    auto_sync: bool = True

    # Connectivity
    connectivity_url: str = ""
    connectivity_interval: int = 30

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("storage_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}."
            )
        return v

    @field_validator("default_ttl", "max_stale", mode="before")
    @classmethod
    def parse_optional_durations(cls, v: int | str | None) -> int | None:
        return parse_duration(v)

    @field_validator("retry_delay", "max_retry_delay", mode="before")
    @classmethod
    def parse_delays(cls, v: int | str) -> int:
        parsed = parse_duration(v)
        return 0 if parsed is None else parsed

    @field_validator("cache_prefix", "queue_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefixes partition one adapter between owners, so they cannot be empty."""
        if not v:
            raise ValueError("Key prefixes cannot be empty.")
        return v

    @field_validator("connectivity_interval")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("connectivity_interval must be at least 1 second.")
        return v

    @model_validator(mode="after")
    def validate_storage_settings(self) -> "OfflineConfig":
        """Checks that durable backends have somewhere to write."""
        if self.storage_backend in ("file", "sqlite") and not self.storage_path:
            raise ValueError(
                f"storage_backend '{self.storage_backend}' requires storage_path."
            )
        if self.cache_prefix == self.queue_prefix:
            raise ValueError("cache_prefix and queue_prefix must differ.")
        return self

    def queue_options(self) -> SyncQueueOptions:
        """Builds the SyncQueueOptions described by this configuration."""
        return SyncQueueOptions(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            max_retry_delay=self.max_retry_delay,
            concurrency=self.concurrency,
            auto_sync=self.auto_sync,
        )

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
