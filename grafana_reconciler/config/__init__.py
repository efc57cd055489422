"""
Library config for the reconciler. The values here are the process-level
defaults (requeue delay, default port, logging). Per-instance settings come
from the Grafana CR itself.
"""

# Local
from .config import library_config


# Define __getattr__ on this module to delegate to the library config.
def __getattr__(name):
    if name in library_config or hasattr({}, name):
        return getattr(library_config, name)
    raise AttributeError(f"No such config attribute {name}")


# Only expose the library config keys
__all__ = list(library_config.keys())
