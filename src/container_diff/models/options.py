"""Options threaded through preparation, analysis and rendering."""

from pydantic import BaseModel, Field, field_validator


class AnalysisOptions(BaseModel):
    """Options for one container-diff invocation."""

    model_config = {"frozen": True}

    analyzer_names: list[str] = Field(default_factory=lambda: ["apt"], description="Analyzers to run")
    sort_by_size: bool = Field(default=False, description="Order entries by descending size")
    preserve_filesystem: bool = Field(default=False, description="Keep materialized image directories")
    json_output: bool = Field(default=False, description="Render structured JSON instead of text")
    max_workers: int = Field(default=8, ge=1, description="Upper bound for concurrent workers")

    @field_validator("analyzer_names")
    @classmethod
    def _dedupe(cls, names: list[str]) -> list[str]:
        return sorted({name.strip() for name in names if name.strip()})
