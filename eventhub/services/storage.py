import logging
import os
from uuid import uuid4

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """Stores uploads on the local filesystem under ``root``.

    ``upload_file`` returns ``{"url", "filename", "size"}``; ``url`` is served
    from ``url_prefix``.
    """

    def __init__(self, root, url_prefix="/uploads"):
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")

    def upload_file(self, file, folder):
        original = secure_filename(file.filename or "") or "upload"
        ext = os.path.splitext(original)[1].lower()
        filename = f"{uuid4().hex}{ext}"

        directory = os.path.join(self.root, folder)
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, filename)
        file.save(path)
        size = os.path.getsize(path)

        logger.info(f"Stored upload {original} as {folder}/{filename} ({size} bytes)")
        return {
            "url": f"{self.url_prefix}/{folder}/{filename}",
            "filename": filename,
            "size": size,
        }
