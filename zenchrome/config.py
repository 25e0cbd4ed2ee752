"""Runtime configuration for Chrome test tabs."""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field

CHROME_BINARIES = ("google-chrome", "chromium", "chromium-browser", "chrome")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def find_chrome() -> str | None:
    """Return the first Chrome/Chromium binary found on PATH."""
    for name in CHROME_BINARIES:
        found = shutil.which(name)
        if found:
            return found
    return None


@dataclass
class ChromeConfig:
    """Settings shared by the browser driver and every tab controller."""

    host: str = "localhost"
    port: int = 9222
    chrome_path: str | None = None
    tmp_dir: str = field(default_factory=tempfile.gettempdir)

    # Tab behaviour
    fail_on_exceptions: bool = False
    skip_hot_reload: bool = False

    # Watchdog budgets, in seconds
    load_timeout: float = 10.0
    hot_reload_timeout: float = 5.0
    test_timeout: float = 20.0

    @classmethod
    def from_env(cls, **overrides) -> ChromeConfig:
        """Build a config from ZEN_* environment variables.

        Keyword overrides win over the environment; ``None`` values are ignored
        so argparse namespaces can be passed straight through.
        """
        config = cls(
            host=os.environ.get("ZEN_CHROME_HOST", "localhost"),
            port=int(os.environ.get("ZEN_CHROME_PORT", "9222")),
            chrome_path=os.environ.get("ZEN_CHROME_PATH") or find_chrome(),
            tmp_dir=os.environ.get("ZEN_TMP_DIR", tempfile.gettempdir()),
            fail_on_exceptions=_env_flag("ZEN_FAIL_ON_EXCEPTIONS"),
            skip_hot_reload=_env_flag("ZEN_SKIP_HOT_RELOAD"),
        )
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise TypeError(f"Unknown config option: {key}")
            setattr(config, key, value)
        return config
