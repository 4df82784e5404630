"""Configuration: frozen ``Config`` plus the JSON config-file loader."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clawloop._http import DEFAULT_MAX_LINE_BYTES, DEFAULT_TIMEOUT_S
from clawloop.errors import ConfigurationError
from clawloop.retry import ErrorSignatures, RetryPolicy

if TYPE_CHECKING:
    from clawloop.providers.base import Provider

load_dotenv()

ProviderName = Literal["anthropic", "openrouter"]

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_HOME = Path("~/.clawloop")
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"
DEFAULT_WORKSPACE = DEFAULT_HOME / "workspace"
DEFAULT_BOUNDARY_PATTERNS: tuple[str, ...] = (
    "Phase complete",
    "Moving to",
    "Task done",
    "Checkpoint",
)

_API_KEY_ENV_VARS: dict[ProviderName, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


@dataclass(frozen=True)
class BoundaryScan:
    """Phrases in assistant text that mark a task boundary worth noting."""

    enabled: bool = True
    patterns: tuple[str, ...] = DEFAULT_BOUNDARY_PATTERNS

    def match(self, text: str) -> str | None:
        """Return the first pattern found in *text*, case-sensitively."""
        if not self.enabled:
            return None
        for line in text.splitlines():
            for pattern in self.patterns:
                if pattern in line:
                    return pattern
        return None


@dataclass(frozen=True)
class Config:
    """Immutable configuration for one agent.

    API keys are auto-resolved from ``ANTHROPIC_API_KEY`` or
    ``OPENROUTER_API_KEY`` when not passed. A missing key is only an error
    once a real provider is built (``create_provider``).

    Example:
        config = Config(provider="anthropic", workspace=Path("~/project"))
    """

    provider: ProviderName = "anthropic"
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    #: Anthropic: base URL without path. OpenRouter: full endpoint URL.
    api_base: str | None = None
    use_mock: bool = False
    workspace: Path = field(default_factory=lambda: DEFAULT_WORKSPACE.expanduser())
    max_tokens: int = 8192
    temperature: float = 0.7
    max_tool_iterations: int = 20
    daily_notes_days: int = 3
    #: Use ``chat_stream`` (with event callbacks) instead of ``chat``.
    stream: bool = True
    boundary_scan: BoundaryScan = field(default_factory=BoundaryScan)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    signatures: ErrorSignatures = field(default_factory=ErrorSignatures)
    request_timeout_s: float = DEFAULT_TIMEOUT_S
    max_sse_line_bytes: int = DEFAULT_MAX_LINE_BYTES

    def __post_init__(self) -> None:
        """Auto-resolve API key and validate configuration."""
        if self.provider not in _API_KEY_ENV_VARS:
            raise ConfigurationError(
                f"Unknown provider: {self.provider!r}",
                hint="Supported providers: 'anthropic', 'openrouter'",
            )
        if not self.model.strip():
            raise ConfigurationError("model must not be empty")
        if self.max_tokens < 1:
            raise ConfigurationError(
                f"max_tokens must be ≥ 1, got {self.max_tokens}",
                hint="This caps the completion length of every model call.",
            )
        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigurationError(
                f"temperature must be within [0, 2], got {self.temperature}"
            )
        if self.max_tool_iterations < 1:
            raise ConfigurationError(
                f"max_tool_iterations must be ≥ 1, got {self.max_tool_iterations}",
                hint="This bounds how many model calls one run may make.",
            )
        if self.daily_notes_days < 0:
            raise ConfigurationError(
                f"daily_notes_days must be ≥ 0, got {self.daily_notes_days}"
            )
        if self.request_timeout_s <= 0:
            raise ConfigurationError(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}"
            )
        if self.max_sse_line_bytes < 64 * 1024:
            raise ConfigurationError(
                f"max_sse_line_bytes must be ≥ 65536, got {self.max_sse_line_bytes}",
                hint="Tool payloads arrive as single SSE lines; keep this large.",
            )

        object.__setattr__(self, "workspace", Path(self.workspace).expanduser())
        if self.api_key is None and not self.use_mock:
            object.__setattr__(
                self, "api_key", os.environ.get(_API_KEY_ENV_VARS[self.provider]) or None
            )

    @property
    def api_key_env_var(self) -> str:
        return _API_KEY_ENV_VARS[self.provider]

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, use_mock={self.use_mock}, "
            f"workspace={str(self.workspace)!r})"
        )

    __repr__ = __str__


# --- Config file schema ---


class _FileModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AgentsSection(_FileModel):
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    max_tokens: int = Field(default=8192, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tool_iterations: int = Field(default=20, ge=1)


class ProviderSection(_FileModel):
    api_key: str | None = None
    api_base: str | None = None


class ProvidersSection(_FileModel):
    anthropic: ProviderSection | None = None
    openrouter: ProviderSection | None = None


class MemorySection(_FileModel):
    daily_notes_days: int = Field(default=3, ge=0)


class BoundarySection(_FileModel):
    enabled: bool = True
    boundary_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_BOUNDARY_PATTERNS))


class ConfigFile(BaseModel):
    """Schema of ``~/.clawloop/config.json``; every section is optional."""

    model_config = ConfigDict(extra="ignore")

    workspace: str = str(DEFAULT_WORKSPACE)
    provider: ProviderName | None = None
    agents: AgentsSection = Field(default_factory=AgentsSection)
    providers: ProvidersSection = Field(default_factory=ProvidersSection)
    memory: MemorySection = Field(default_factory=MemorySection)
    strategic_compact: BoundarySection = Field(default_factory=BoundarySection)

    def resolve_provider(self) -> ProviderName:
        """Explicit choice, else the first provider with a key (Anthropic first)."""
        if self.provider is not None:
            return self.provider
        if self._api_key("anthropic"):
            return "anthropic"
        if self._api_key("openrouter"):
            return "openrouter"
        return "anthropic"

    def _section(self, name: ProviderName) -> ProviderSection:
        return getattr(self.providers, name) or ProviderSection()

    def _api_key(self, name: ProviderName) -> str | None:
        # Environment wins over the file.
        return os.environ.get(_API_KEY_ENV_VARS[name]) or self._section(name).api_key

    def to_config(self, **overrides: Any) -> Config:
        provider = overrides.pop("provider", None) or self.resolve_provider()
        section = self._section(provider)
        values: dict[str, Any] = {
            "provider": provider,
            "model": self.agents.model,
            "api_key": self._api_key(provider),
            "api_base": section.api_base,
            "workspace": Path(self.workspace),
            "max_tokens": self.agents.max_tokens,
            "temperature": self.agents.temperature,
            "max_tool_iterations": self.agents.max_tool_iterations,
            "daily_notes_days": self.memory.daily_notes_days,
            "boundary_scan": BoundaryScan(
                enabled=self.strategic_compact.enabled,
                patterns=tuple(self.strategic_compact.boundary_patterns),
            ),
        }
        values.update(overrides)
        return Config(**values)


def load_config(path: str | Path | None = None, **overrides: Any) -> Config:
    """Load ``Config`` from a JSON file, defaulting missing values.

    A missing file yields the defaults. Unreadable or invalid content raises
    ``ConfigurationError``. Keyword *overrides* replace resolved fields.
    """
    config_path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        data: Any = {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e
    else:
        try:
            data = json.loads(raw) if raw.strip() else {}
        except ValueError as e:
            raise ConfigurationError(
                f"Config file {config_path} is not valid JSON: {e}"
            ) from e

    try:
        parsed = ConfigFile.model_validate(data)
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(p) for p in err.get("loc", ()))
        raise ConfigurationError(
            f"Configuration validation failed: {loc}: {err.get('msg')}",
            hint=f"Fix {config_path} or delete it to use defaults.",
        ) from e
    return parsed.to_config(**overrides)


def create_provider(config: Config) -> Provider:
    """Build the provider adapter *config* selects."""
    if config.use_mock:
        from clawloop.providers.mock import MockProvider

        return MockProvider()

    if not config.api_key:
        raise ConfigurationError(
            f"api_key required for {config.provider}",
            hint=f"Set {config.api_key_env_var} or pass Config(api_key=...).",
        )

    if config.provider == "openrouter":
        from clawloop.providers.openrouter import OpenRouterProvider

        return OpenRouterProvider(
            config.api_key, config.api_base, timeout_s=config.request_timeout_s
        )

    from clawloop.providers.anthropic import AnthropicProvider

    return AnthropicProvider(
        config.api_key,
        config.api_base,
        timeout_s=config.request_timeout_s,
        max_line_bytes=config.max_sse_line_bytes,
    )
