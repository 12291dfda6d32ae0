import re
from pathlib import Path

_RELATIVE_SQLITE = re.compile(r"^(sqlite(?:\+\w+)?:///)\./(.*)$")


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Resolve ``sqlite[+driver]:///./relative/path`` against ``project_root``.

    The driver suffix is kept. In-memory, absolute and non-SQLite URLs are
    returned unchanged.
    """
    match = _RELATIVE_SQLITE.match(url)
    if match is None:
        return url
    prefix, rel = match.groups()
    return f"{prefix}{(project_root / rel).resolve()}"
