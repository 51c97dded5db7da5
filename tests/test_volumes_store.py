"""Tests for the filesystem volume store."""

import json
from pathlib import Path

import pytest

from stackgate.domain import VolumeDestroyRefused
from stackgate.volumes import FilesystemVolumeStore


def test_volume_store_writes_marker_atomically_inside_volume(tmp_path: Path) -> None:
    """Write a JSON marker inside the volume and leave no temporary files.

    Returns:
        None: Assertions validate marker persistence.

    Raises:
        AssertionError: Raised when marker persistence differs.
    """

    volume_store = FilesystemVolumeStore(root=tmp_path / "volumes")

    marker_path = volume_store.volume_write_marker("drupal-sites", ".stackgate/site-installed", {"steps": ["install"]})

    assert volume_store.volume_marker_exists("drupal-sites", ".stackgate/site-installed") is True
    assert marker_path.parent.parent == volume_store.volume_path("drupal-sites")
    payload = json.loads(marker_path.read_text(encoding="utf-8"))
    assert payload["steps"] == ["install"]
    assert "written_at_utc" in payload
    assert [entry.name for entry in marker_path.parent.iterdir()] == ["site-installed"]
    assert volume_store.volume_list() == ("drupal-sites",)


def test_volume_store_rejects_escaping_names_and_markers(tmp_path: Path) -> None:
    """Reject volume names and marker paths that leave the store root.

    Returns:
        None: Assertions validate path guarding.

    Raises:
        AssertionError: Raised when an escaping path is accepted.
    """

    volume_store = FilesystemVolumeStore(root=tmp_path)

    with pytest.raises(ValueError):
        volume_store.volume_path("../outside")
    with pytest.raises(ValueError):
        volume_store.volume_path("..")
    with pytest.raises(ValueError):
        volume_store.volume_marker_path("data", "../../etc/passwd")


def test_volume_store_destroy_requires_confirmation(tmp_path: Path) -> None:
    """Refuse deletion without confirmation and delete only existing volumes with it.

    Returns:
        None: Assertions validate destructive-operation guarding.

    Raises:
        AssertionError: Raised when volumes are deleted implicitly.
    """

    volume_store = FilesystemVolumeStore(root=tmp_path)
    volume_store.volume_ensure("mysql-data")
    (volume_store.volume_path("mysql-data") / "ibdata1").write_bytes(b"data")

    with pytest.raises(VolumeDestroyRefused):
        volume_store.volume_destroy(["mysql-data"])
    assert volume_store.volume_exists("mysql-data") is True

    destroyed = volume_store.volume_destroy(["mysql-data", "never-created"], confirm=True)

    assert destroyed == ("mysql-data",)
    assert volume_store.volume_exists("mysql-data") is False
