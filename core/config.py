from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, cast

from pydantic import BaseModel, ConfigDict, Field, model_validator

from telemetry.contracts import (
    DEFAULT_PERCENTILES,
    DURATION_UNITS_NS,
    GraphiteConfig,
    MetricSource,
)

DurationUnit = Literal["ns", "us", "ms", "s"]


class AppCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    env: str


class LoggingCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    format: Literal["json", "console"] = "console"
    log_dir: Path | None = None

    @model_validator(mode="after")
    def _json_needs_log_dir(self) -> LoggingCfg:
        if self.format == "json" and self.log_dir is None:
            raise ValueError("logging.log_dir is required when format is json")
        return self


class GraphiteCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "127.0.0.1"
    port: int = Field(default=2003, ge=0, le=65535)
    flush_interval_sec: float = Field(default=60.0, gt=0)
    duration_unit: DurationUnit = "ns"
    prefix: str = ""
    percentiles: list[float] = Field(default_factory=lambda: list(DEFAULT_PERCENTILES))

    def to_export_config(self, registry: MetricSource) -> GraphiteConfig:
        """Build the exporter configuration for registry."""
        return GraphiteConfig(
            host=self.host,
            port=self.port,
            registry=registry,
            flush_interval_seconds=self.flush_interval_sec,
            duration_unit_ns=DURATION_UNITS_NS[self.duration_unit],
            prefix=self.prefix,
            percentiles=tuple(self.percentiles),
        )


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    app: AppCfg
    logging: LoggingCfg = Field(default_factory=LoggingCfg)
    graphite: GraphiteCfg = Field(default_factory=GraphiteCfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    """Safe YAML read; returns {} if file missing/empty."""
    import yaml  # lazy import

    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data or {}


def load_config(base_dir: str | Path) -> Config:
    """Load config models from ./config/base.yaml."""

    base_yaml = Path(base_dir) / "config" / "base.yaml"
    data = _read_yaml(base_yaml)
    if not data:
        msg = f"Missing or empty config file: {base_yaml}"
        raise FileNotFoundError(msg)

    return cast(Config, Config.model_validate(data))
