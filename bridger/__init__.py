"""Top-level package for bridge route resolution and transaction building."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``bridger.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("bridger")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
