from pathlib import Path

import platformdirs


CONFIG_ENV_VAR = "FINEAUTH_CONFIG"


def get_fineauth_config_dir() -> Path:
    """Get the per-user FineAuth config directory (platform-specific)."""
    return Path(platformdirs.user_config_dir("fineauth"))


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for FineAuth.

    Searches in the following order:
    1. fineauth.toml in current directory
    2. config/fineauth.toml in current directory
    3. config.toml in user config directory/fineauth/ (platform-specific)
    """
    candidates = [
        Path("fineauth.toml").resolve(),
        Path("config", "fineauth.toml").resolve(),
        get_fineauth_config_dir() / "config.toml",
    ]

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate

    return None
