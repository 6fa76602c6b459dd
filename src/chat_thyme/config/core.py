import logging
from typing import Any, Dict

from .loader import as_bool, pick

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:11434/v1"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant interacting with the user through Discord messages."
)
# Local OpenAI-compatible servers accept any key, but the client requires one.
DEFAULT_API_KEY = "ollama"


class Core:
    def __init__(self, config: dict | None = None, overrides: Dict[str, Any] | None = None) -> None:
        cfg = (config or {}).get("chatthyme", {})
        discord_cfg = cfg.get("discord", {})

        self.DISCORD_BOT_TOKEN: str | None = pick(None, "discord_bot_token", "DISCORD_BOT_TOKEN", {}, "")
        self.MODEL: str | None = pick(overrides, "model", "CHAT_THYME_MODEL", cfg, "model")
        self.SERVER_URL: str = str(pick(overrides, "server_url", "MODEL_SERVER_URL", cfg, "server_url", DEFAULT_SERVER_URL))
        self.API_KEY: str = str(pick(None, "api_key", "API_KEY", cfg, "api_key", DEFAULT_API_KEY))
        self.USE_TOOLS: bool = as_bool(pick(overrides, "use_tools", "USE_TOOLS", cfg, "use_tools", False))
        self.EXA_API_KEY: str | None = pick(None, "exa_api_key", "EXA_API_KEY", cfg, "exa_api_key")
        self.SYSTEM_PROMPT: str = str(
            pick(overrides, "system_prompt", "MODEL_SYSTEM_PROMPT", cfg, "system_prompt", DEFAULT_SYSTEM_PROMPT)
        )

        errors: list[str] = []
        slow_mode_raw = pick(
            overrides, "discord_slow_mode_interval", "DISCORD_SLOW_MODE_SECONDS", discord_cfg, "slow_mode_interval", 10
        )
        try:
            self.DISCORD_SLOW_MODE_INTERVAL: int = int(slow_mode_raw)
        except (TypeError, ValueError):
            errors.append(f"DISCORD_SLOW_MODE_SECONDS must be an integer (got {slow_mode_raw!r})")
            self.DISCORD_SLOW_MODE_INTERVAL = 0
        if self.DISCORD_SLOW_MODE_INTERVAL < 0:
            errors.append("DISCORD_SLOW_MODE_SECONDS must be >= 0")

        required = [
            ("DISCORD_BOT_TOKEN", self.DISCORD_BOT_TOKEN),
            ("CHAT_THYME_MODEL", self.MODEL),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            errors.insert(0, f"Missing environment variables: {', '.join(missing)}")
        if errors:
            raise ValueError("; ".join(errors))

        if self.USE_TOOLS and not self.EXA_API_KEY:
            logger.warning("USE_TOOLS is enabled but no EXA_API_KEY is set; tool calls will be declined.")

    @property
    def tools_available(self) -> bool:
        return self.USE_TOOLS and bool(self.EXA_API_KEY)
