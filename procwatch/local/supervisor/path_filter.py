import os
from typing import Iterable, List, Optional


def to_abs_dir_path(path: str, cwd: Optional[str] = None) -> str:
    """Resolves a path against `cwd`, cleans it and appends a trailing separator."""
    if not os.path.isabs(path):
        path = os.path.join(cwd or os.getcwd(), path)
    path = os.path.normpath(path)
    return path if path.endswith(os.sep) else path + os.sep


def clean_extension(path: str) -> str:
    """Returns the extension of a path without the leading dot."""
    return os.path.splitext(path)[1].lstrip(".")


class RestartPolicy:
    """
    Decides whether a changed path should trigger a restart.

    A path is accepted when its extension is allowed (an empty allow-list
    accepts everything) and it is not inside an ignored directory.
    """

    def __init__(self, extensions: Iterable[str], ignored_dirs: Iterable[str] = (), cwd: Optional[str] = None):
        self.extensions = {ext.lower() for ext in extensions}
        self.ignored_dirs: List[str] = [to_abs_dir_path(path, cwd) for path in ignored_dirs]

    def allow_extension(self, path: str) -> bool:
        return not self.extensions or clean_extension(path).lower() in self.extensions

    def is_ignored(self, path: str) -> bool:
        """Assumes that `path` is absolute."""
        return any(path.startswith(prefix) for prefix in self.ignored_dirs)

    def accept(self, path: str) -> bool:
        return self.allow_extension(path) and not self.is_ignored(path)
