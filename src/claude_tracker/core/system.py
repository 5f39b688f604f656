import sys
from pathlib import Path

import platformdirs


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME directory using platformdirs.

    Returns:
        Path to the user config directory (cross-platform).
    """
    return Path(platformdirs.user_config_dir())


def is_macos() -> bool:
    """Check whether the platform keychain is available."""
    return sys.platform == "darwin"
