"""Filesystem-backed named persistent volumes and bootstrap markers."""

from __future__ import annotations

from collections.abc import Iterable
import json
import os
from pathlib import Path
import shutil
import tempfile

from stackgate.domain import VolumeDestroyRefused, domain_utc_now_iso


class FilesystemVolumeStore:
    """Named volumes stored as directories under one root.

    Volumes are created on demand and never deleted implicitly; deletion goes
    through `volume_destroy`, which requires explicit confirmation.
    """

    def __init__(self, root: Path):
        """Initialize volume store.

        Args:
            root: Directory that holds one subdirectory per volume.

        Raises:
            ValueError: Raised when root is None.
        """

        if root is None:
            raise ValueError("root must not be None")
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def volume_path(self, volume_name: str) -> Path:
        """Return the host directory of one volume.

        Args:
            volume_name: Volume name.

        Returns:
            Path: Absolute volume directory.

        Raises:
            ValueError: Raised when the name would escape the volume root.
        """

        if not volume_name or "/" in volume_name or volume_name in (".", ".."):
            raise ValueError(f"invalid volume name {volume_name!r}")
        return self._root / volume_name

    def volume_exists(self, volume_name: str) -> bool:
        return self.volume_path(volume_name).is_dir()

    def volume_ensure(self, volume_name: str) -> Path:
        """Create the volume directory if it does not exist.

        Args:
            volume_name: Volume name.

        Returns:
            Path: Absolute volume directory.

        Raises:
            OSError: Raised when the directory cannot be created.
        """

        volume_directory = self.volume_path(volume_name)
        volume_directory.mkdir(parents=True, exist_ok=True)
        return volume_directory

    def volume_list(self) -> tuple[str, ...]:
        """Return names of volumes present on disk, sorted."""

        if not self._root.is_dir():
            return ()
        return tuple(sorted(entry.name for entry in self._root.iterdir() if entry.is_dir()))

    def volume_marker_path(self, volume_name: str, marker: str) -> Path:
        """Return the absolute path of a marker within a volume.

        Args:
            volume_name: Volume name.
            marker: Relative marker path.

        Returns:
            Path: Marker path inside the volume directory.

        Raises:
            ValueError: Raised when the marker escapes the volume.
        """

        volume_directory = self.volume_path(volume_name)
        marker_path = (volume_directory / marker).resolve()
        if volume_directory != marker_path and volume_directory not in marker_path.parents:
            raise ValueError(f"marker {marker!r} escapes volume {volume_name}")
        return marker_path

    def volume_marker_exists(self, volume_name: str, marker: str) -> bool:
        return self.volume_marker_path(volume_name, marker).is_file()

    def volume_write_marker(self, volume_name: str, marker: str, payload: dict[str, object]) -> Path:
        """Atomically write a completion marker inside a volume.

        The content is written to a temporary file in the same directory and
        moved into place with `os.replace`, so readers observe either no marker
        or a complete one.

        Args:
            volume_name: Volume name.
            marker: Relative marker path.
            payload: JSON-serializable marker content.

        Returns:
            Path: Written marker path.

        Raises:
            OSError: Raised when the marker cannot be written.
        """

        marker_path = self.volume_marker_path(volume_name, marker)
        marker_path.parent.mkdir(parents=True, exist_ok=True)
        marker_body = json.dumps({**payload, "written_at_utc": domain_utc_now_iso()}, sort_keys=True)

        file_descriptor, temporary_name = tempfile.mkstemp(prefix=".marker-", dir=marker_path.parent)
        try:
            with os.fdopen(file_descriptor, "w", encoding="utf-8") as temporary_file:
                temporary_file.write(marker_body)
                temporary_file.flush()
                os.fsync(temporary_file.fileno())
            os.replace(temporary_name, marker_path)
        except BaseException:
            Path(temporary_name).unlink(missing_ok=True)
            raise
        return marker_path

    def volume_destroy(self, volume_names: Iterable[str], confirm: bool = False) -> tuple[str, ...]:
        """Irreversibly delete volumes and everything in them.

        Args:
            volume_names: Volumes to delete.
            confirm: Must be True; deletion is never implicit.

        Returns:
            tuple[str, ...]: Names of volumes that existed and were deleted.

        Raises:
            VolumeDestroyRefused: Raised when confirmation is missing.
        """

        if not confirm:
            raise VolumeDestroyRefused("destroying volumes is irreversible and requires explicit confirmation")

        destroyed: list[str] = []
        for volume_name in volume_names:
            volume_directory = self.volume_path(volume_name)
            if volume_directory.is_dir():
                shutil.rmtree(volume_directory)
                destroyed.append(volume_name)
        return tuple(destroyed)
