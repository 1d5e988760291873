"""
Configuration Manager for ColdCopy Local
Handles runtime settings, copy length vocabulary and tone guidance
"""

import json
import math
import os
from typing import Dict, Any, Optional
from pathlib import Path
import logging


DEFAULT_LLM_BASE_URL = "https://api.deepseek.com/chat/completions"
DEFAULT_LLM_MODEL = "deepseek-chat"
MAX_FOLLOW_UPS = 10

DEFAULT_SETTINGS: Dict[str, Any] = {
    "llm_api_key": None,
    "llm_base_url": DEFAULT_LLM_BASE_URL,
    "llm_model": DEFAULT_LLM_MODEL,
    "worker_concurrency": 3,
    "scrape_concurrency": 5,
    "scrape_timeout_ms": 30000,
    "ai_timeout_ms": 45000,
    "max_scraped_chars": 6000,
    "scrape_proxy_url": None,
    "log_activity_context": False,
    "log_activity_context_max_chars": 2000,
    "log_bulk_prompt": False,
    "log_bulk_prompt_max_chars": 4000,
    "log_level": "INFO",
}

# Setting key -> environment variables, first non-empty wins.
ENV_VARS: Dict[str, tuple] = {
    "llm_api_key": ("DEEPSEEK_API_KEY", "DEEPSEEK_KEY", "DEEPSEEK_TOKEN"),
    "llm_base_url": ("DEEPSEEK_API_URL",),
    "llm_model": ("DEEPSEEK_MODEL",),
    "worker_concurrency": ("WORKER_CONCURRENCY",),
    "scrape_concurrency": ("SCRAPE_CONCURRENCY",),
    "scrape_timeout_ms": ("SCRAPE_TIMEOUT_MS",),
    "ai_timeout_ms": ("AI_TIMEOUT_MS",),
    "max_scraped_chars": ("MAX_SCRAPED_CHARS",),
    "scrape_proxy_url": ("SCRAPE_PROXY_URL",),
    "log_activity_context": ("LOG_ACTIVITY_CONTEXT",),
    "log_activity_context_max_chars": ("LOG_ACTIVITY_CONTEXT_MAX_CHARS",),
    "log_bulk_prompt": ("LOG_BULK_PROMPT",),
    "log_bulk_prompt_max_chars": ("LOG_BULK_PROMPT_MAX_CHARS",),
    "log_level": ("COLDCOPY_LOG_LEVEL",),
}

TRUE_VALUES = {"1", "true", "yes", "y", "on"}

TONE_GUIDE: Dict[str, str] = {
    "Professional/Respectful/Formal": "polished and courteous, complete sentences, no slang, respectful of the reader's time",
    "Friendly & Conversational": "warm and approachable, like a helpful peer, contractions welcome, light but not jokey",
    "Casual": "relaxed and plain-spoken, short sentences, everyday words, still respectful",
    "Humorous/Playful/Funny": "one light touch of humor at most, playful wording, never sarcastic or at the reader's expense",
    "Empathetic/Supportive/Sympathetic": "acknowledge the reader's pressures first, reassuring wording, offer help rather than push",
    "Casual-Respectful": "easygoing wording with polite framing, no slang, friendly but measured",
    "Concise/Direct": "get to the point in the first sentence, minimal qualifiers, one clear ask",
    "Decisive/Authoritative": "confident statements, clear recommendations, no hedging words like maybe or just",
    "Cheerful/Enthusiastic/Joyful": "upbeat and positive energy without exclamation marks or hype",
    "Encouraging/Inspiring": "focus on what the reader can achieve, forward-looking and motivating",
    "Persuasive": "lead with the reader's benefit, one concrete reason to act, calm and credible",
    "Informative": "share a useful fact or observation first, neutral and clear, teach before asking",
    "Warm & Welcoming": "kind and inviting wording, make the reader feel valued, gentle ask",
    "Optimistic": "highlight positive possibilities and outcomes, hopeful but realistic",
    "Authoritative": "expert voice, precise wording, speak from experience without bragging",
    "Conversational": "sounds like spoken language, natural rhythm, contractions, one idea per sentence",
    "Urgent": "convey timeliness through relevance, not pressure; clear reason why now, no alarmist words",
}

DEFAULT_TONE_GUIDANCE = "clear, professional and friendly; plain words, no hype"


def map_copy_length(length: Optional[str], custom_length: Any = None, strict: bool = False) -> int:
    """
    Map the copy length vocabulary to a target word count.

    Args:
        length: ``Short``, ``Medium``, ``Long`` (prefix match) or ``Custom``
        custom_length: Word count used with ``Custom``
        strict: Raise ValueError for an invalid custom length instead of
            falling back to 100

    Returns:
        Target word count for the initial email
    """
    value = str(length or '').strip()
    if value == 'Custom':
        try:
            number = float(custom_length)
        except (TypeError, ValueError):
            number = float('nan')
        if not math.isfinite(number) or number <= 0:
            if strict:
                raise ValueError("customLength must be a positive number when length is Custom")
            return 100
        return int(round(number))
    if value.startswith('Short'):
        return 65
    if value.startswith('Medium'):
        return 100
    if value.startswith('Long'):
        return 150
    return 100


def parse_follow_up_count(value: Any) -> int:
    """
    Parse a follow-up count: blank is 0, fractions are floored, capped at 10.

    Raises:
        ValueError: For negative or non-numeric input
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"followUpCount must be a number, got {value!r}")
    if not math.isfinite(number) or number < 0:
        raise ValueError(f"followUpCount must be a non-negative number, got {value!r}")
    return min(MAX_FOLLOW_UPS, int(math.floor(number)))


def get_tone_guidance(tone: Optional[str]) -> str:
    """Describe a tone for the prompt; unknown tones get neutral guidance."""
    key = str(tone or '').strip().lower()
    if not key:
        return DEFAULT_TONE_GUIDANCE
    for name, guidance in TONE_GUIDE.items():
        if name.lower() == key:
            return guidance
    return DEFAULT_TONE_GUIDANCE


def _coerce_setting(key: str, raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in TRUE_VALUES
    if isinstance(default, int):
        try:
            number = float(raw)
        except (TypeError, ValueError):
            return default
        return int(number) if math.isfinite(number) else default
    return raw


class ConfigManager:
    """
    Manages configuration settings for ColdCopy Local.
    Resolves built-in defaults, ``config/settings.json`` and environment variables.
    """

    def __init__(self, data_dir: str = "./coldcopy_data"):
        """
        Initialize configuration manager.

        Args:
            data_dir: Directory containing configuration files
        """
        self.data_dir = Path(data_dir)
        self.config_dir = self.data_dir / "config"
        self.logger = logging.getLogger("coldcopy.config")

        self.config_dir.mkdir(parents=True, exist_ok=True)

        self._cache = {}

    def get_runtime_settings(self, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Resolve runtime settings.

        Args:
            environ: Environment mapping, defaults to ``os.environ``

        Returns:
            Dictionary of settings keyed like DEFAULT_SETTINGS
        """
        env = os.environ if environ is None else environ

        settings = dict(DEFAULT_SETTINGS)
        file_settings = self._load_json_config("settings.json", {})
        for key, value in file_settings.items():
            if key in settings and value is not None:
                settings[key] = _coerce_setting(key, value, DEFAULT_SETTINGS[key])

        for key, names in ENV_VARS.items():
            for name in names:
                raw = env.get(name)
                if raw is not None and str(raw).strip():
                    settings[key] = _coerce_setting(key, raw, DEFAULT_SETTINGS[key])
                    break

        return settings

    def get_prompt_overrides(self) -> Dict[str, Any]:
        """Prompt template overrides from ``config/prompts.json``."""
        if "prompts" not in self._cache:
            self._cache["prompts"] = self._load_json_config("prompts.json", {})
        return self._cache["prompts"]

    def _load_json_config(self, filename: str, default: Dict[str, Any]) -> Dict[str, Any]:
        """Load JSON configuration file with fallback to default."""
        try:
            config_file = self.config_dir / filename
            if config_file.exists():
                with open(config_file, 'r', encoding='utf-8') as f:
                    return json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to load {filename}: {str(e)}")

        return default.copy()

    def save_config(self, filename: str, config_data: Dict[str, Any]) -> None:
        """
        Write a JSON configuration file under the config directory.

        Args:
            filename: File name, e.g. ``settings.json``
            config_data: Configuration data to save
        """
        try:
            config_file = self.config_dir / filename
            with open(config_file, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2, ensure_ascii=False)

            self.clear_cache()
            self.logger.info(f"Saved configuration: {filename}")

        except Exception as e:
            self.logger.error(f"Failed to save config {filename}: {str(e)}")
            raise

    def clear_cache(self) -> None:
        """Clear all cached configurations."""
        self._cache.clear()
        self.logger.debug("Configuration cache cleared")
