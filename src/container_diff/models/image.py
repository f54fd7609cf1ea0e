"""Image-related data models."""

from pydantic import BaseModel, Field


class LayerInfo(BaseModel):
    """Identifies one filesystem layer of an image."""

    model_config = {"frozen": True}

    digest: str = Field(description="Layer digest or archive member id")
    size_hint: int = Field(default=0, description="Layer size in bytes, 0 when unknown")
    media_type: str | None = Field(default=None, description="Layer media type")

    @property
    def short_digest(self) -> str:
        """Digest without algorithm prefix, truncated for display."""
        return self.digest.split(":", 1)[-1][:12]


class HistoryItem(BaseModel):
    """One build step recorded in the image config."""

    model_config = {"frozen": True, "extra": "ignore"}

    created_by: str = Field(default="", description="Command that created this step")
    created: str | None = Field(default=None, description="Creation timestamp")
    comment: str | None = Field(default=None, description="Build comment")
    empty_layer: bool = Field(default=False, description="Whether the step produced no layer")


class ContainerConfig(BaseModel):
    """The runtime section of an image config."""

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    env: list[str] = Field(default_factory=list, alias="Env", description="KEY=VALUE strings")


class ConfigSchema(BaseModel):
    """The parts of an image config blob the analyzers consume."""

    model_config = {"frozen": True, "extra": "ignore"}

    config: ContainerConfig = Field(default_factory=ContainerConfig)
    history: list[HistoryItem] = Field(default_factory=list, description="Build history")

    @property
    def env(self) -> list[str]:
        """Environment in declaration order."""
        return self.config.env

    @property
    def env_map(self) -> dict[str, str]:
        """Environment as a mapping; later duplicates win."""
        env = {}
        for item in self.config.env:
            key, _, value = item.partition("=")
            env[key] = value
        return env
