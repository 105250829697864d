import logging
import os
import re
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

_SAFE_SUFFIX = re.compile(r"^\.[a-z0-9]{1,10}$")


class AssetStorage:
    """Local filesystem store for uploaded and AI-modified images.

    Files are addressed by flat keys (file names) inside ``root``. Upload keys are
    random UUIDs; the client-supplied filename only contributes its extension.
    Served over HTTP through the ``/uploads`` static mount.
    """

    def __init__(self, root: Path, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", "..") or ".." in key:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / key

    @staticmethod
    def new_upload_key(original_filename: str) -> str:
        suffix = Path(os.path.basename(original_filename or "")).suffix.lower()
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        return f"{uuid.uuid4().hex}{suffix}"

    def save_upload(self, fileobj: BinaryIO, original_filename: str) -> str:
        """Stream an uploaded file into storage and return its new key.

        Raises FileExistsError rather than overwriting an existing key.
        """
        key = self.new_upload_key(original_filename)
        dest = self.path_for(key)
        with open(dest, "xb") as out:
            shutil.copyfileobj(fileobj, out, length=1024 * 1024)
        logger.info(f"Stored upload '{original_filename}' as '{key}' ({dest.stat().st_size} bytes)")
        return key

    def read(self, key: str) -> bytes:
        return self.path_for(key).read_bytes()

    def write(self, key: str, data: bytes) -> None:
        # Overwrites an existing file with the same key
        self.path_for(key).write_bytes(data)

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"
