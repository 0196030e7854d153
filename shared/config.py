"""Shared configuration for the study plan agent."""
import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Annotated, Optional

from langchain_core.runnables import RunnableConfig, ensure_config

PROVIDERS = ("anthropic", "google", "openai")

PROVIDER_ALIASES = {
    "claude": "anthropic",
    "gemini": "google",
}

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5",
    "google": "gemini-2.0-flash",
    "openai": "gpt-4o",
}


def normalize_provider(name: str) -> str:
    """Map a provider tag or alias onto one of PROVIDERS."""
    tag = (name or "").strip().lower()
    tag = PROVIDER_ALIASES.get(tag, tag)
    if tag not in PROVIDERS:
        raise ValueError(f"Unsupported provider: {name!r} (expected one of {', '.join(PROVIDERS)})")
    return tag


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _load_model_config() -> dict:
    """Load per-provider model names from model_config.json."""
    config_path = Path(__file__).parent.parent / "model_config.json"
    if not config_path.exists():
        return dict(DEFAULT_MODELS)

    with open(config_path) as f:
        config = json.load(f)

    return {provider: config.get(provider, DEFAULT_MODELS[provider]) for provider in PROVIDERS}


@dataclass(frozen=True)
class AgentConfig:
    """Immutable provider selection for one agent run."""

    provider: str
    model: str
    api_key: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", normalize_provider(self.provider))

    def __repr__(self) -> str:
        return f"AgentConfig(provider={self.provider!r}, model={self.model!r}, api_key='***')"


@dataclass(kw_only=True)
class Configuration:
    """Shared configuration for the planner, its providers and the repair search.

    Values default from the environment when the object is built; nothing below
    reads the environment again afterwards. Use agent_config() to hand the
    selected provider to the agent loop.
    """

    # PROVIDER
    provider: str = field(
        default_factory=lambda: os.getenv("LLM_PROVIDER", "openai"),
        metadata={"description": "LLM provider tag: anthropic, google or openai"}
    )
    model: Annotated[Optional[str], {"__template_metadata__": {"kind": "llm"}}] = field(
        default_factory=lambda: os.getenv("LLM_MODEL"),
        metadata={"description": "Model name; falls back to model_config.json for the provider"}
    )

    # API KEYS
    anthropic_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"),
        metadata={"description": "Anthropic API key"}
    )
    google_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_AI_API_KEY"),
        metadata={"description": "Google Generative Language API key"}
    )
    openai_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY"),
        metadata={"description": "OpenAI API key"}
    )

    # Networking controls
    llm_timeout: int = field(
        default_factory=lambda: int(os.getenv("LLM_TIMEOUT", "60")),
        metadata={"description": "HTTP timeout (seconds) for LLM calls"}
    )
    llm_max_retries: int = field(
        default_factory=lambda: int(os.getenv("LLM_MAX_RETRIES", "1")),
        metadata={"description": "Extra attempts for a failed provider call (transport, 429, 5xx)"}
    )
    llm_backoff: float = field(
        default_factory=lambda: float(os.getenv("LLM_BACKOFF", "2.0")),
        metadata={"description": "Seconds to wait before the first retry; doubles per attempt"}
    )

    # AGENT LOOP
    max_iterations: int = field(
        default_factory=lambda: int(os.getenv("AGENT_MAX_ITERATIONS", "20")),
        metadata={"description": "Maximum model turns per planning run"}
    )
    deadline_seconds: Optional[float] = field(
        default_factory=lambda: float(os.environ["AGENT_DEADLINE_SECONDS"]) if os.getenv("AGENT_DEADLINE_SECONDS") else None,
        metadata={"description": "Wall-clock budget for the whole loop (None = unlimited)"}
    )

    # CALENDAR AND REPAIR
    calendar_fail_open: bool = field(
        default_factory=lambda: _env_flag("CALENDAR_FAIL_OPEN"),
        metadata={"description": "Treat calendar read failures as 'no conflict' instead of failing"}
    )
    repair_full_scan: bool = field(
        default_factory=lambda: _env_flag("REPAIR_FULL_SCAN"),
        metadata={"description": "Scan the whole preferred window on later days, not only the start slot"}
    )
    repair_horizon_days: int = field(
        default_factory=lambda: int(os.getenv("REPAIR_HORIZON_DAYS", "14")),
        metadata={"description": "How many calendar days past a conflict the repair search may look"}
    )

    @classmethod
    def from_runnable_config(
        cls, config: Optional[RunnableConfig] = None
    ) -> "Configuration":
        """Create Configuration from RunnableConfig for dependency injection."""
        cfg = ensure_config(config or {})
        data = cfg.get("configurable", {})
        configuration = data.get("configuration")
        if isinstance(configuration, cls):
            return configuration
        return cls(**{k: v for k, v in data.items() if k in {f.name for f in fields(cls)}})

    def api_key_for(self, provider: str) -> Optional[str]:
        return {
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
            "openai": self.openai_api_key,
        }[normalize_provider(provider)]

    def model_for(self, provider: str) -> str:
        if self.model:
            return self.model
        return _load_model_config()[normalize_provider(provider)]

    def agent_config(self, provider: Optional[str] = None, model: Optional[str] = None) -> AgentConfig:
        """Build the immutable AgentConfig for one run."""
        tag = normalize_provider(provider or self.provider)
        return AgentConfig(
            provider=tag,
            model=model or self.model_for(tag),
            api_key=self.api_key_for(tag) or "",
        )

    def validate(self) -> None:
        """Validate that required configuration is present."""
        tag = normalize_provider(self.provider)
        if not self.api_key_for(tag):
            env_name = {
                "anthropic": "ANTHROPIC_API_KEY",
                "google": "GEMINI_API_KEY",
                "openai": "OPENAI_API_KEY",
            }[tag]
            raise ValueError(
                f"{env_name} environment variable is not set. "
                "Please set it in your .env file or environment."
            )
        if self.max_iterations < 1:
            raise ValueError("AGENT_MAX_ITERATIONS must be at least 1")
