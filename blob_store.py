import logging
from pathlib import Path
from typing import Union

from errors import StorageError

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Archives original uploads under ``<root>/<bucket>/<path>``; never overwrites."""

    def __init__(self, root_dir: Union[str, Path] = "uploads"):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.root_dir = Path(root_dir)

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root_dir / bucket).resolve()
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise StorageError("Failed to store file")
        return target

    def upload(self, bucket: str, path: str, content: Union[bytes, str], content_type: str = "application/octet-stream") -> Path:
        """
        Write one object.

        Args:
            bucket: Bucket name, a directory under the store root
            path: Object path inside the bucket
            content: File bytes, or text stored as UTF-8
            content_type: MIME type, logged only

        Returns:
            Path of the stored file

        Raises:
            StorageError: the object exists or cannot be written
        """
        target = self._resolve(bucket, path)
        data = content.encode('utf-8') if isinstance(content, str) else content

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'xb') as f:
                f.write(data)
        except OSError as e:
            self.logger.error(f"Storage upload error: {e}")
            raise StorageError("Failed to store file") from e

        self.logger.info(f"Stored {len(data)} bytes ({content_type}) at {bucket}/{path}")
        return target

    def read(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        with open(target, 'rb') as f:
            return f.read()
