from pathlib import Path


class ProjectRootNotFound(Exception):
    pass


def get_project_root_dir() -> Path:
    """Closest ancestor directory holding a pyproject.toml."""
    for directory in Path(__file__).resolve().parents:
        if (directory / "pyproject.toml").is_file():
            return directory
    raise ProjectRootNotFound(f"No pyproject.toml above {__file__}")
