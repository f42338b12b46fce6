"""
Version information for the Timelock SDK.
"""
import importlib.metadata
import pathlib
import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

DEFAULT_VERSION = "0.1.0"


def _read_version() -> str:
    """Installed package metadata first, then pyproject.toml for source checkouts."""
    try:
        return importlib.metadata.version("timelock-sdk")
    except importlib.metadata.PackageNotFoundError:
        pass

    path = pathlib.Path(__file__).parent.parent / "pyproject.toml"
    try:
        with path.open("rb") as f:
            return tomllib.load(f)["project"]["version"]
    except (FileNotFoundError, KeyError, tomllib.TOMLDecodeError):
        return DEFAULT_VERSION


__version__ = _read_version()
