"""Top-level package for the MultiAsk streaming answer client."""

__version__ = "0.1.0"

from .config import ConfigManager, get_user_config_dir  # noqa: E402,F401
from .logging import setup_logging  # noqa: E402,F401
