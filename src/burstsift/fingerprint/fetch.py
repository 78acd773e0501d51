"""Image loading from local paths or http(s) URLs."""

import io
from pathlib import Path
from typing import Optional

import imagehash
import requests
from PIL import Image, UnidentifiedImageError

from ..logging import get_logger
from .hash import DEFAULT_HASH_SIZE, FingerprintError, compute_fingerprint

logger = get_logger(__name__)


class ImageFetcher:
    """Fetches and decodes photos so they can be fingerprinted."""

    def __init__(self,
                 timeout: float = 10.0,
                 session: Optional[requests.Session] = None,
                 hash_size: int = DEFAULT_HASH_SIZE):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.hash_size = hash_size

    def fetch(self, source: str) -> Image.Image:
        """
        Load an image from a URL or filesystem path.

        Raises:
            FingerprintError: If the image cannot be retrieved or decoded
        """
        if source.startswith(("http://", "https://")):
            data = self._download(source)
        else:
            try:
                data = Path(source).read_bytes()
            except OSError as exc:
                raise FingerprintError(f"Failed to read {source}: {exc}") from exc

        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            return img
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise FingerprintError(f"Failed to decode {source}: {exc}") from exc

    def fingerprint(self, source: str) -> imagehash.ImageHash:
        img = self.fetch(source)
        try:
            return compute_fingerprint(img, hash_size=self.hash_size)
        finally:
            img.close()

    def _download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise FingerprintError(f"Failed to download {url}: {exc}") from exc

        logger.debug(f"Downloaded {len(response.content)} bytes from {url}")
        return response.content
