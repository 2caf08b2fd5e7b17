"""Classify a source reference as a local path or an allow-listed remote URL."""
import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

from image_optimizer.processing.errors import InvalidSourceError
from image_optimizer.processing.models import SourceImage

logger = logging.getLogger("optimizer.sources")

REMOTE_IMAGE_EXTENSION = re.compile(r"\.(jpg|jpeg|png|webp|gif|avif)$", re.I)


def _host_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


class SourceResolver:
    def __init__(self, allowed_domains: Iterable[str], image_service_domains: Iterable[str] = ()):
        self.allowed_domains = tuple(d.lower() for d in allowed_domains)
        self.image_service_domains = tuple(d.lower() for d in image_service_domains)

    def classify(self, source_ref: Union[str, Path]) -> SourceImage:
        """Return a SourceImage or raise InvalidSourceError. Performs no I/O."""
        if isinstance(source_ref, Path):
            return SourceImage.local(source_ref)
        ref = (source_ref or "").strip()
        if not ref:
            raise InvalidSourceError(ref, "Empty source")
        parsed = urlparse(ref)
        if parsed.scheme in ("http", "https"):
            self.validate_url(ref)
            return SourceImage.remote(ref)
        if parsed.scheme and parsed.netloc:
            raise InvalidSourceError(ref, f"Unsupported URL scheme {parsed.scheme!r}")
        return SourceImage.local(ref)

    def validate_url(self, url: str) -> None:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if not host:
            raise InvalidSourceError(url, "URL has no host")
        if not _host_matches(host, self.allowed_domains):
            raise InvalidSourceError(url, f"Domain not allowed ({host})")
        if REMOTE_IMAGE_EXTENSION.search(parsed.path) or _host_matches(host, self.image_service_domains):
            return
        raise InvalidSourceError(url, "URL does not point to an image")

    def is_valid_url(self, url: str) -> bool:
        try:
            self.validate_url(url)
        except InvalidSourceError as e:
            logger.debug("Rejected %s", e)
            return False
        return True
