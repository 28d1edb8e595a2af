from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from app.core.errors import ValidationError

logger = logging.getLogger(__name__)


def object_parts(path: str) -> list[str]:
    parts = [secure_filename(part) for part in PurePosixPath(path).parts]
    return [part for part in parts if part]


class LocalObjectStorage:
    """File-system backed object store returning stable public URLs."""

    def __init__(self, root: Path, public_url: str) -> None:
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    def _absolute(self, path: str) -> Path:
        parts = object_parts(path)
        if not parts:
            raise ValidationError("Laluan fail tidak sah")
        return self.root.joinpath(*parts)

    def upload(self, path: str, data: bytes) -> str:
        absolute = self._absolute(path)
        absolute.parent.mkdir(parents=True, exist_ok=True)
        absolute.write_bytes(data)
        relative = absolute.relative_to(self.root).as_posix()
        logger.info("Stored object %s (%d bytes)", relative, len(data))
        return f"{self.public_url}/{relative}"

    def remove(self, path: str) -> None:
        absolute = self._absolute(path)
        if absolute.exists():
            absolute.unlink()

    def read(self, path: str) -> bytes:
        absolute = self._absolute(path)
        if not absolute.is_file():
            raise FileNotFoundError(path)
        return absolute.read_bytes()


def default_storage() -> LocalObjectStorage:
    root = current_app.config.get("STORAGE_ROOT") or str(Path(current_app.instance_path) / "storage")
    return LocalObjectStorage(Path(root), current_app.config.get("STORAGE_PUBLIC_URL", "/storage"))


def read_upload(file_obj: FileStorage | None, label: str) -> tuple[bytes, str] | None:
    if file_obj is None or not file_obj.filename:
        return None
    data = file_obj.read()
    if not data:
        raise ValidationError(f"Fail {label} kosong")
    extension = PurePosixPath(secure_filename(file_obj.filename)).suffix.lower() or ".bin"
    return data, extension
