"""Tests for host collaborators: path resolution, directory creation, library importers."""

import pytest

from scenecut.core.collaborators import (
    Collaborators,
    CopyLibraryImporter,
    LocalDirectoryEnsurer,
    LocalPathResolver,
    NoopLibraryImporter,
    get_library_importer,
)

pytestmark = [pytest.mark.fast]


def test_local_path_resolver_relative_to_root(tmp_path):
    """Relative handles resolve under root."""
    (tmp_path / "videos").mkdir()
    video = tmp_path / "videos" / "a.mp4"
    video.write_bytes(b"x")
    assert LocalPathResolver(tmp_path).resolve("videos/a.mp4") == video.resolve()


def test_local_path_resolver_rejects_traversal(tmp_path):
    """Handles escaping root raise ValueError."""
    root = tmp_path / "root"
    root.mkdir()
    (tmp_path / "outside.mp4").write_bytes(b"x")
    with pytest.raises(ValueError, match="escapes"):
        LocalPathResolver(root).resolve("../outside.mp4")


def test_local_path_resolver_missing_file(tmp_path):
    """Missing files raise FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        LocalPathResolver().resolve(tmp_path / "missing.mp4")


def test_directory_ensurer_creates_parents(tmp_path):
    """ensure() creates nested directories and returns the path."""
    target = tmp_path / "a" / "b" / "c"
    assert LocalDirectoryEnsurer().ensure(target) == target
    assert target.is_dir()


def test_noop_importer_returns_none(tmp_path):
    """The default importer skips every file."""
    assert NoopLibraryImporter().import_file(tmp_path / "x.jpg", name="x", tags=[]) is None


def test_copy_importer_copies_into_catalog(tmp_path):
    """CopyLibraryImporter places files under catalog/<artifact dir name>/."""
    out = tmp_path / "output" / "clip01"
    out.mkdir(parents=True)
    artifact = out / "clip01_frame_001.jpg"
    artifact.write_bytes(b"jpeg")
    catalog = tmp_path / "catalog"
    dest = CopyLibraryImporter(catalog).import_file(artifact, name="clip01_frame_001", tags=["scenecut"])
    assert dest == str(catalog / "clip01" / "clip01_frame_001.jpg")
    assert (catalog / "clip01" / "clip01_frame_001.jpg").read_bytes() == b"jpeg"


def test_get_library_importer_factory(tmp_path):
    """Factory returns importers by name and rejects unknown names."""
    assert isinstance(get_library_importer("noop"), NoopLibraryImporter)
    assert isinstance(get_library_importer("copy", catalog_dir=tmp_path), CopyLibraryImporter)
    with pytest.raises(ValueError, match="catalog_dir"):
        get_library_importer("copy")
    with pytest.raises(ValueError, match="Unknown library importer"):
        get_library_importer("eagle")


def test_collaborators_defaults():
    """The default bundle works on the local filesystem and skips import."""
    bundle = Collaborators()
    assert isinstance(bundle.path_resolver, LocalPathResolver)
    assert isinstance(bundle.directory_ensurer, LocalDirectoryEnsurer)
    assert isinstance(bundle.library_importer, NoopLibraryImporter)
