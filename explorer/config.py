"""
Explorer Configuration: centralized, immutable config for a PR exploration run.

Built once at process start (usually via ExplorerConfig.from_env()) and handed
to each component's constructor. Components never read the environment.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional


DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"
DEFAULT_OLLAMA_MODEL = "gemma3:4b"
DEFAULT_GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class ModelConfig:
    """
    Model backend (Ollama) endpoint and sampling configuration.

    Scope inference and report writing use separate sampling options:
    scope wants near-greedy output, the report tolerates a little more.
    """

    base_url: str = DEFAULT_OLLAMA_URL
    model: str = DEFAULT_OLLAMA_MODEL

    # Timeouts (seconds)
    tags_timeout: float = 5.0
    generate_timeout: float = 30.0

    # Sampling
    scope_options: Mapping[str, float] = field(
        default_factory=lambda: {"temperature": 0.1, "top_k": 10, "top_p": 0.3}
    )
    report_options: Mapping[str, float] = field(
        default_factory=lambda: {"temperature": 0.2, "num_predict": 1500}
    )

    @property
    def sampling_policy_hash(self) -> str:
        """Short hash of model + sampling options, logged with every call."""
        policy_str = (
            f"model={self.model}|"
            f"scope={sorted(self.scope_options.items())}|"
            f"report={sorted(self.report_options.items())}"
        )
        return hashlib.sha256(policy_str.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class CodeHostConfig:
    """GitHub REST endpoint and credentials."""

    api_url: str = DEFAULT_GITHUB_API_URL
    token: str = ""
    timeout: float = 30.0

    @property
    def has_token(self) -> bool:
        return bool(self.token)


@dataclass(frozen=True)
class ConsoleThresholds:
    error_limit: int = 0
    warning_limit: int = 5


@dataclass(frozen=True)
class NetworkThresholds:
    failure_rate: float = 0.05     # 5% failure rate
    slow_request_ms: int = 5000
    timeout_ms: int = 30000


@dataclass(frozen=True)
class VisualThresholds:
    cls_threshold: float = 0.1
    render_time_ms: int = 3000
    min_screenshots: int = 5


@dataclass(frozen=True)
class PerformanceThresholds:
    fcp_ms: int = 1800
    lcp_ms: int = 2500
    ttfb_ms: int = 600
    cls_score: float = 0.1
    dom_complete_ms: int = 3000


@dataclass(frozen=True)
class DetectorThresholds:
    """Per-detector thresholds. Each detector reads only its own block."""

    console: ConsoleThresholds = field(default_factory=ConsoleThresholds)
    network: NetworkThresholds = field(default_factory=NetworkThresholds)
    visual: VisualThresholds = field(default_factory=VisualThresholds)
    performance: PerformanceThresholds = field(default_factory=PerformanceThresholds)


DEFAULT_DETECTORS: tuple[str, ...] = ("console", "network", "visual", "performance")


@dataclass(frozen=True)
class ExplorerConfig:
    """Top-level configuration for one exploration run."""

    model: ModelConfig = field(default_factory=ModelConfig)
    code_host: CodeHostConfig = field(default_factory=CodeHostConfig)
    thresholds: DetectorThresholds = field(default_factory=DetectorThresholds)

    # Exploration
    max_steps: int = 20
    use_model_discovery: bool = True   # False = deterministic route discovery phases
    enabled_detectors: tuple[str, ...] = DEFAULT_DETECTORS

    # Side channels
    enable_pr_comments: bool = True
    webhook_url: Optional[str] = None

    # Triggers
    required_labels: tuple[str, ...] = ()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExplorerConfig":
        """
        Build the run configuration from environment variables.

        This is the only place that touches the environment.
        """
        env = os.environ if environ is None else environ

        model = ModelConfig(
            base_url=env.get("OLLAMA_URL", DEFAULT_OLLAMA_URL),
            model=env.get("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
            generate_timeout=_ms_to_seconds(env.get("OLLAMA_TIMEOUT"), default=30.0),
        )
        code_host = CodeHostConfig(
            api_url=env.get("GITHUB_API_URL", DEFAULT_GITHUB_API_URL),
            token=env.get("GITHUB_TOKEN", ""),
        )
        labels = tuple(
            label.strip() for label in env.get("REQUIRED_LABELS", "").split(",") if label.strip()
        )

        return cls(
            model=model,
            code_host=code_host,
            max_steps=_int_or(env.get("MAX_STEPS"), 20),
            use_model_discovery=env.get("DISABLE_AI", "").lower() != "true",
            enable_pr_comments=env.get("ENABLE_PR_COMMENTS", "true").lower() != "false",
            webhook_url=env.get("WEBHOOK_URL") or None,
            required_labels=labels,
        )


def _int_or(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _ms_to_seconds(value: Optional[str], default: float) -> float:
    """OLLAMA_TIMEOUT is expressed in milliseconds."""
    ms = _int_or(value, 0)
    return ms / 1000 if ms > 0 else default
