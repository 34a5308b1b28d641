"""
Image extraction and content-addressed image storage.

Parsers only collect ImageRefs (inline base64 blocks, or <vision>/abs/path</vision>
tags in assistant text). The message processor persists them through an
ImageStore, which names files by the SHA-256 of their bytes so the same
image is stored once.
"""

import base64
import binascii
import logging
import re
from pathlib import Path
from typing import Any, Optional

from agent_tts.models.parsed import ImageRef
from agent_tts.utils.hashing import hash_bytes

logger = logging.getLogger(__name__)

MIME_TO_EXT = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}

VISION_TAG_RE = re.compile(r"<vision>(/[^<]+)</vision>")


def image_extension(media_type: Optional[str]) -> str:
    """File extension for a MIME type; clipboard images default to png."""
    if not media_type:
        return "png"
    return MIME_TO_EXT.get(media_type.lower(), "png")


def extract_image_blocks(content: Any) -> list[ImageRef]:
    """Collect base64 'image' blocks from a structured message content list."""
    if not isinstance(content, list):
        return []

    refs: list[ImageRef] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "image":
            continue
        source = item.get("source") or {}
        if source.get("type") != "base64" or not source.get("data"):
            logger.debug("Skipping image block with unsupported source")
            continue
        try:
            data = base64.b64decode(source["data"], validate=False)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Invalid base64 image data: {e}")
            continue
        refs.append(ImageRef(data=data, media_type=source.get("media_type")))
    return refs


def extract_vision_refs(text: str) -> tuple[str, list[ImageRef]]:
    """
    Pull <vision>/abs/path</vision> tags out of assistant text.

    Returns:
        (text with the tags removed, image references)
    """
    refs = [ImageRef(source_path=m.group(1).strip()) for m in VISION_TAG_RE.finditer(text)]
    if not refs:
        return text, []
    return VISION_TAG_RE.sub("", text).strip(), refs


class ImageStore:
    """Content-addressed image files under {base_dir}/{hash[:4]}/{hash}.{ext}."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def save(self, ref: ImageRef) -> Optional[str]:
        """
        Persist one image.

        Returns:
            Path relative to base_dir, or None if the image could not be read
        """
        data = ref.data
        media_type = ref.media_type
        if data is None and ref.source_path:
            source = Path(ref.source_path)
            try:
                data = source.read_bytes()
            except OSError as e:
                logger.warning(f"Cannot read vision image {source}: {e}")
                return None
            if media_type is None:
                ext = source.suffix.lower().lstrip(".")
                media_type = next(
                    (mime for mime, e in MIME_TO_EXT.items() if e == ext), "image/png"
                )
        if not data:
            return None

        digest = hash_bytes(data)
        relative = f"{digest[:4]}/{digest}.{image_extension(media_type)}"
        target = self.base_dir / relative
        if target.exists():
            logger.debug(f"Image already stored: {relative}")
            return relative

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug(f"Stored image: {relative}")
        return relative

    def save_all(self, refs: list[ImageRef]) -> list[str]:
        paths = []
        for ref in refs:
            path = self.save(ref)
            if path:
                paths.append(path)
        return paths

    def resolve(self, relative: str) -> Path:
        return self.base_dir / relative
