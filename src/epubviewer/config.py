"""Configuration management via .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def _xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


@dataclass
class AssistantProviderConfig:
    name: str
    api_key: str = ""
    base_url: str = ""
    model: str = ""


@dataclass
class AppConfig:
    # Paths
    data_dir: Path = field(default_factory=lambda: _xdg_data_home() / "epubviewer")
    config_dir: Path = field(default_factory=lambda: _xdg_config_home() / "epubviewer")
    db_path: Path = field(init=False)
    log_path: Path = field(init=False)
    converted_dir: Path = field(init=False)
    uploads_dir: Path = field(init=False)

    # Server
    host: str = "0.0.0.0"
    port: int = 10300
    api_prefix: str = "/api"

    # Conversion
    pandoc_path: str = "pandoc"
    pandoc_timeout: float = 300.0

    # Web articles
    page_timeout: float = 30.0
    image_timeout: float = 15.0
    min_section_chars: int = 20  # a split section must have MORE than this much text
    min_candidate_chars: int = 100
    crawl_max_pages: int = 50
    crawl_delay: float = 0.5

    # Assistant
    ai_provider: str = ""
    providers: dict[str, AssistantProviderConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)
        self.db_path = self.data_dir / "epubviewer.db"
        self.log_path = self.data_dir / "epubviewer.log"
        self.converted_dir = self.data_dir / "converted"
        self.uploads_dir = self.data_dir / "uploads"
        for d in (self.data_dir, self.config_dir, self.converted_dir, self.uploads_dir):
            d.mkdir(parents=True, exist_ok=True)

    def get_active_provider(self) -> Optional[AssistantProviderConfig]:
        return self.providers.get(self.ai_provider)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def load_config(env_path: Optional[Path] = None) -> AppConfig:
    """Load config from .env file. Searches CWD then config dir."""
    search_paths = [
        env_path,
        Path.cwd() / ".env",
        _xdg_config_home() / "epubviewer" / ".env",
        Path.home() / ".env",
    ]
    for p in search_paths:
        if p and p.exists():
            load_dotenv(p)
            break

    data_dir = os.getenv("EPUBVIEWER_DATA_DIR")
    kwargs = {"data_dir": Path(data_dir)} if data_dir else {}
    defaults = AppConfig(**kwargs)
    config = AppConfig(
        **kwargs,
        host=os.getenv("EPUBVIEWER_HOST", defaults.host),
        port=_env_int("PORT", defaults.port),
        pandoc_path=os.getenv("EPUBVIEWER_PANDOC", defaults.pandoc_path),
        pandoc_timeout=_env_float("EPUBVIEWER_PANDOC_TIMEOUT", defaults.pandoc_timeout),
        page_timeout=_env_float("EPUBVIEWER_PAGE_TIMEOUT", defaults.page_timeout),
        image_timeout=_env_float("EPUBVIEWER_IMAGE_TIMEOUT", defaults.image_timeout),
        min_section_chars=_env_int(
            "EPUBVIEWER_MIN_SECTION_CHARS", defaults.min_section_chars
        ),
        crawl_max_pages=_env_int("EPUBVIEWER_CRAWL_MAX_PAGES", defaults.crawl_max_pages),
        ai_provider=os.getenv("EPUBVIEWER_AI_PROVIDER", defaults.ai_provider),
    )

    provider_defs = {
        "openai": (
            "OPENAI_API_KEY",
            "OPENAI_BASE_URL",
            "OPENAI_MODEL",
            "https://api.openai.com/v1",
            "gpt-4o-mini",
        ),
        "gemini": (
            "GEMINI_API_KEY",
            "GEMINI_BASE_URL",
            "GEMINI_MODEL",
            "https://generativelanguage.googleapis.com/v1beta/openai",
            "gemini-2.0-flash",
        ),
        "openrouter": (
            "OPENROUTER_API_KEY",
            "OPENROUTER_BASE_URL",
            "OPENROUTER_MODEL",
            "https://openrouter.ai/api/v1",
            "google/gemini-2.0-flash-001",
        ),
        "ollama": (
            "",
            "OLLAMA_BASE_URL",
            "OLLAMA_MODEL",
            "http://localhost:11434/v1",
            "qwen2.5:7b",
        ),
    }

    for name, (
        key_env,
        url_env,
        model_env,
        default_url,
        default_model,
    ) in provider_defs.items():
        api_key = os.getenv(key_env, "") if key_env else ""
        base_url = os.getenv(url_env, default_url)
        model = os.getenv(model_env, default_model)
        config.providers[name] = AssistantProviderConfig(
            name=name,
            api_key=api_key,
            base_url=base_url,
            model=model,
        )

    return config
