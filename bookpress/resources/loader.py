import json
import logging
from pathlib import Path
from importlib import resources as res


log = logging.getLogger("bookpress")


RESOURCES_PACKAGE = "bookpress.resources"
TEMPLATES_DIR = "templates"
TERMS_DIR = "terms"
CSS_DIR = "css"


def _resource_path(folder: str, filename: str) -> Path | None:
    """Return a real filesystem path for a resource using importlib.resources."""
    try:
        resource = res.files(RESOURCES_PACKAGE).joinpath(folder).joinpath(filename)
        with res.as_file(resource) as path:
            return path
    except Exception as e:
        log.error(f"Resource not found: {folder}/{filename}: {e}")
        return None


def load_text(folder: str, filename: str) -> str | None:
    """Return file content as text."""
    path = _resource_path(folder, filename)
    if not path or not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def load_json(folder: str, filename: str) -> dict:
    """Load JSON from resources folder."""
    path = _resource_path(folder, filename)
    if not path or not path.is_file():
        log.error(f"JSON not found: {folder}/{filename}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        log.error(f"Failed to load JSON {filename}: {e}")
        return {}


def load_terms_json(filename: str) -> dict:
    return load_json(TERMS_DIR, filename)


def load_template(filename: str) -> str | None:
    """Return a template shell (html, js) as text."""
    return load_text(TEMPLATES_DIR, filename)


def load_css(filename: str, custom: Path | None = None) -> str:
    """
    Return stylesheet text: the custom file if it is valid, else the packaged one.
    Falls back to an empty stylesheet if neither is available.
    """
    if custom:
        custom = Path(custom)
        if custom.is_file():
            log.info(f"Using custom stylesheet: {custom}")
            return custom.read_text(encoding="utf-8")
        log.warning(f"Custom stylesheet not found at {custom}. Falling back to default.")

    css_text = load_text(CSS_DIR, filename)
    if css_text is None:
        log.warning(f"Default stylesheet '{filename}' not found. Using an empty stylesheet.")
        return f"/* Stylesheet '{filename}' is missing. */\n"
    return css_text
