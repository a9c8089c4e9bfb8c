import toml

from scoring_service.core.paths import get_project_root_dir


def get_version() -> str:
    """Project version declared in pyproject.toml."""
    pyproject = toml.load(get_project_root_dir() / "pyproject.toml")
    try:
        version = pyproject["project"]["version"]
    except KeyError as e:
        raise ValueError("Version not found in pyproject.toml") from e
    return str(version)
