"""
Tests for image extraction and the content-addressed image store.
"""

import base64

from agent_tts.models.parsed import ImageRef
from agent_tts.parsers.images import (
    ImageStore,
    extract_image_blocks,
    extract_vision_refs,
    image_extension,
)
from agent_tts.utils.hashing import hash_bytes


class TestExtraction:
    def test_extract_base64_blocks(self):
        content = [
            {"type": "text", "text": "look"},
            {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": base64.b64encode(b"jpg").decode()}},
            {"type": "image", "source": {"type": "url", "url": "https://example.com/a.png"}},
        ]
        refs = extract_image_blocks(content)

        assert len(refs) == 1
        assert refs[0].data == b"jpg"
        assert refs[0].media_type == "image/jpeg"

    def test_extract_from_string_content(self):
        assert extract_image_blocks("plain text") == []

    def test_vision_refs(self):
        text, refs = extract_vision_refs("Before <vision>/a/b.png</vision> after")
        assert text == "Before  after"
        assert [r.source_path for r in refs] == ["/a/b.png"]

    def test_no_vision_refs_leaves_text(self):
        assert extract_vision_refs("  untouched ") == ("  untouched ", [])

    def test_image_extension(self):
        assert image_extension("image/jpeg") == "jpg"
        assert image_extension("IMAGE/WEBP") == "webp"
        assert image_extension(None) == "png"
        assert image_extension("application/octet-stream") == "png"


class TestImageStore:
    def test_save_inline_image(self, tmp_path):
        store = ImageStore(tmp_path)
        digest = hash_bytes(b"pixels")

        relative = store.save(ImageRef(data=b"pixels", media_type="image/gif"))

        assert relative == f"{digest[:4]}/{digest}.gif"
        assert store.resolve(relative).read_bytes() == b"pixels"

    def test_same_bytes_stored_once(self, tmp_path):
        store = ImageStore(tmp_path)
        first = store.save(ImageRef(data=b"same"))
        second = store.save(ImageRef(data=b"same"))

        assert first == second
        assert len(list(tmp_path.rglob("*.png"))) == 1

    def test_save_from_source_path(self, tmp_path):
        source = tmp_path / "shot.jpg"
        source.write_bytes(b"jpeg-bytes")
        store = ImageStore(tmp_path / "images")

        relative = store.save(ImageRef(source_path=str(source)))

        assert relative.endswith(".jpg")

    def test_unreadable_source_skipped(self, tmp_path):
        store = ImageStore(tmp_path)
        refs = [ImageRef(source_path=str(tmp_path / "missing.png")), ImageRef(data=b"ok")]

        assert len(store.save_all(refs)) == 1
