"""gitgrope: watch GitHub repositories for new releases and act on them."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("gitgrope")
except importlib.metadata.PackageNotFoundError:
    __version__ = "unknown"
