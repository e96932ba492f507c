"""SOCKS5 relay with username/password authentication."""

import pathlib
import tomllib
from importlib.metadata import PackageNotFoundError, version


def get_version() -> str:
    """Read the installed version, falling back to pyproject.toml."""
    try:
        return version("socks-relay")
    except PackageNotFoundError:
        pass

    # Look for pyproject.toml in parent directories of a source checkout
    current_dir = pathlib.Path(__file__).parent
    for parent in [current_dir, *current_dir.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            with pyproject_path.open("rb") as f:
                pyproject_data = tomllib.load(f)
            return pyproject_data["project"]["version"]

    return "0.0.0"


__version__ = get_version()
