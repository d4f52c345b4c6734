"""Host collaborators consumed by the pipeline: path resolution, directory creation, library import.

The pipeline never reaches for these through globals; a Collaborators bundle is passed to
VideoProcessor. Defaults work on the local filesystem and skip library import.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

_log = logging.getLogger(__name__)


class PathResolver(ABC):
    """Turns a host asset handle into an absolute path to an existing file."""

    @abstractmethod
    def resolve(self, handle: str | Path) -> Path:
        ...


class DirectoryEnsurer(ABC):
    """Creates (if needed) and returns an output directory."""

    @abstractmethod
    def ensure(self, path: Path) -> Path:
        ...


class LibraryImporter(ABC):
    """Hands a finished artifact to an external catalog. Returns the catalog id, or None if skipped."""

    @abstractmethod
    def import_file(
        self,
        path: Path,
        *,
        name: str,
        tags: list[str],
        annotation: str = "",
    ) -> str | None:
        ...


class LocalPathResolver(PathResolver):
    """Handles are plain filesystem paths, optionally relative to root."""

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root).resolve() if root is not None else None

    def resolve(self, handle: str | Path) -> Path:
        path = Path(handle).expanduser()
        if self._root is not None and not path.is_absolute():
            path = self._root / path
        path = path.resolve()
        if self._root is not None:
            try:
                path.relative_to(self._root)
            except ValueError:
                raise ValueError(f"Path escapes library root: {str(handle)!r}") from None
        if not path.exists():
            raise FileNotFoundError(f"Path does not exist: {path}")
        return path


class LocalDirectoryEnsurer(DirectoryEnsurer):
    def ensure(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path


class NoopLibraryImporter(LibraryImporter):
    """Default importer: artifacts stay where they were written."""

    def import_file(
        self,
        path: Path,
        *,
        name: str,
        tags: list[str],
        annotation: str = "",
    ) -> str | None:
        return None


class CopyLibraryImporter(LibraryImporter):
    """Copies artifacts into catalog_dir/<video>/, where <video> is the artifact directory name."""

    def __init__(self, catalog_dir: str | Path, *, ensurer: DirectoryEnsurer | None = None) -> None:
        self._catalog_dir = Path(catalog_dir)
        self._ensurer = ensurer or LocalDirectoryEnsurer()

    def import_file(
        self,
        path: Path,
        *,
        name: str,
        tags: list[str],
        annotation: str = "",
    ) -> str | None:
        folder = self._ensurer.ensure(self._catalog_dir / path.parent.name)
        dest = folder / path.name
        shutil.copy2(path, dest)
        _log.debug("Imported %s -> %s (name=%s, tags=%s)", path, dest, name, tags)
        return str(dest)


@dataclass
class Collaborators:
    """Bundle of injected host collaborators."""

    path_resolver: PathResolver = field(default_factory=LocalPathResolver)
    directory_ensurer: DirectoryEnsurer = field(default_factory=LocalDirectoryEnsurer)
    library_importer: LibraryImporter = field(default_factory=NoopLibraryImporter)


def get_library_importer(importer_name: str, *, catalog_dir: str | Path | None = None) -> LibraryImporter:
    """Return a library importer by name ('noop' or 'copy')."""
    if importer_name == "noop":
        return NoopLibraryImporter()
    if importer_name == "copy":
        if catalog_dir is None:
            raise ValueError("The 'copy' library importer requires a catalog_dir")
        return CopyLibraryImporter(catalog_dir)
    raise ValueError(f"Unknown library importer: {importer_name}")
