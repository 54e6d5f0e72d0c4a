"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

PROVIDER_KINDS = ("openai", "ollama", "local")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMProviderConfig:
    name: str = "openai"
    model: str = "gpt-4o"
    display_name: str = ""
    api_base: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    supports_tools: bool = True
    max_output_tokens: int = 4_096
    temperature: float | None = None
    timeout_seconds: int = 120
    max_retries: int = 2
    extra: dict = field(default_factory=dict)


@dataclass
class InferenceSettings:
    """Per-turn behaviour of the orchestrator and the system prompt."""

    include_dynamic_system_info: bool = True
    collapse_reasoning_when_complete: bool = True
    tools_enabled: bool = True
    tool_call_delay: float = 0.5
    tool_timeout: float = 30.0
    max_rounds: int = 16
    search_sensitivity: str = "balanced"
    locale: str = ""


@dataclass
class MemoryConfig:
    proactive_memory_file: str = ""


@dataclass
class PluginsConfig:
    enabled: bool = False
    allow_tools: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class FlowConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    inference: InferenceSettings = field(default_factory=InferenceSettings)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    models: dict[str, LLMProviderConfig] = field(default_factory=dict)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # session-only overrides, applied on top of every loaded layer
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Override one setting for this session only, e.g. ``set_override("inference.max_rounds", 4)``."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d

    def validate(self) -> list[str]:
        """Return a list of human-readable problems; empty when valid."""
        problems: list[str] = []
        entries = {"llm": self.llm, **{f"models.{k}": v for k, v in self.models.items()}}
        for label, entry in entries.items():
            if entry.name not in PROVIDER_KINDS:
                problems.append(
                    f"{label}.name must be one of {', '.join(PROVIDER_KINDS)} (got {entry.name!r})"
                )
            if not entry.model:
                problems.append(f"{label}.model must not be empty")
            if entry.max_output_tokens <= 0:
                problems.append(f"{label}.max_output_tokens must be positive")
        if self.inference.tool_call_delay < 0:
            problems.append("inference.tool_call_delay must not be negative")
        if self.inference.tool_timeout <= 0:
            problems.append("inference.tool_timeout must be positive")
        if self.inference.max_rounds < 1:
            problems.append("inference.max_rounds must be at least 1")
        if self.inference.search_sensitivity not in ("essential", "balanced", "proactive"):
            problems.append(
                f"inference.search_sensitivity is unknown: {self.inference.search_sensitivity!r}"
            )
        return problems


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Set ``a.b.c`` style attribute paths on nested config sections."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Merge *overlay* over *base* key by key; nested dicts merge recursively."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Convert an environment variable string into a config field value."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Instantiate *cls* from the matching YAML mapping; unknown keys are dropped."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "FLOWCORE_LLM_NAME":               ("llm.name", str),
    "FLOWCORE_LLM_MODEL":              ("llm.model", str),
    "FLOWCORE_LLM_DISPLAY_NAME":       ("llm.display_name", str),
    "FLOWCORE_LLM_API_BASE":           ("llm.api_base", str),
    "FLOWCORE_LLM_API_KEY_ENV":        ("llm.api_key_env", str),
    "FLOWCORE_LLM_SUPPORTS_TOOLS":     ("llm.supports_tools", bool),
    "FLOWCORE_LLM_MAX_OUTPUT":         ("llm.max_output_tokens", int),
    "FLOWCORE_LLM_TEMPERATURE":        ("llm.temperature", float),
    "FLOWCORE_LLM_TIMEOUT":            ("llm.timeout_seconds", int),
    "FLOWCORE_LLM_MAX_RETRIES":        ("llm.max_retries", int),
    "FLOWCORE_INFERENCE_SYSTEM_INFO":  ("inference.include_dynamic_system_info", bool),
    "FLOWCORE_INFERENCE_COLLAPSE":     ("inference.collapse_reasoning_when_complete", bool),
    "FLOWCORE_INFERENCE_TOOLS":        ("inference.tools_enabled", bool),
    "FLOWCORE_INFERENCE_TOOL_DELAY":   ("inference.tool_call_delay", float),
    "FLOWCORE_INFERENCE_TOOL_TIMEOUT": ("inference.tool_timeout", float),
    "FLOWCORE_INFERENCE_MAX_ROUNDS":   ("inference.max_rounds", int),
    "FLOWCORE_INFERENCE_SEARCH":       ("inference.search_sensitivity", str),
    "FLOWCORE_INFERENCE_LOCALE":       ("inference.locale", str),
    "FLOWCORE_MEMORY_FILE":            ("memory.proactive_memory_file", str),
    "FLOWCORE_PLUGINS_ENABLED":        ("plugins.enabled", bool),
    "FLOWCORE_PLUGINS_ALLOW":          ("plugins.allow_tools", list),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def _read_yaml(config_path: str | Path | None) -> dict[str, Any]:
    if config_path is None:
        return {}
    path = Path(config_path).expanduser()
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _apply_env(cfg: FlowConfig) -> None:
    for name, (dotpath, target_type) in _ENV_MAP.items():
        value = os.environ.get(name)
        if value is not None:
            _apply_dotpath(cfg, dotpath, _coerce(value, target_type))


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> FlowConfig:
    """
    Build a FlowConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : YAML file; a missing file means "defaults only"
    profile : entry of the file's ``profiles`` mapping to overlay
    cli_overrides : ``{"section.field": value}`` from command line flags
    """
    raw = _read_yaml(config_path)
    if profile:
        overlay = (raw.get("profiles") or {}).get(profile)
        if overlay:
            raw = _deep_merge(raw, overlay)

    cfg = FlowConfig(
        llm=_build_section(LLMProviderConfig, raw.get("llm", {})),
        inference=_build_section(InferenceSettings, raw.get("inference", {})),
        memory=_build_section(MemoryConfig, raw.get("memory", {})),
        plugins=_build_section(PluginsConfig, raw.get("plugins", {})),
        models={
            name: _build_section(LLMProviderConfig, entry or {})
            for name, entry in (raw.get("models") or {}).items()
        },
        profiles=raw.get("profiles", {}),
    )

    _apply_env(cfg)
    for dotpath, value in (cli_overrides or {}).items():
        _apply_dotpath(cfg, dotpath, value)

    return cfg
