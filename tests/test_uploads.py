"""Tests for upload filename generation and local file storage."""

import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from api.errors import BadRequestError
from api.uploads import UploadStorage, format_size_limit, generate_upload_filename


def make_upload(content: bytes, filename: str, content_type: str) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class TestGenerateUploadFilename:
    def test_basic(self):
        assert generate_upload_filename("my video.MP4", now_ms=123) == "123_my_video.mp4"

    def test_deterministic_for_same_clock(self):
        assert generate_upload_filename("a.png", now_ms=5) == generate_upload_filename("a.png", now_ms=5)

    def test_uses_clock_when_not_given(self):
        prefix, _ = generate_upload_filename("a.png").split("_", 1)
        assert prefix.isdigit() and len(prefix) >= 13

    def test_directory_parts_discarded(self):
        assert generate_upload_filename("../../etc/passwd", now_ms=1) == "1_passwd"
        assert generate_upload_filename("C:\\Users\\me\\clip.webm", now_ms=1) == "1_clip.webm"

    def test_base_truncated_to_50(self):
        name = generate_upload_filename("a" * 80 + ".mp4", now_ms=1)
        assert name == "1_" + "a" * 50 + ".mp4"

    def test_unicode_transliterated(self):
        assert generate_upload_filename("résumé final.jpg", now_ms=1) == "1_resume_final.jpg"

    def test_only_last_extension_kept_as_extension(self):
        assert generate_upload_filename("archive.tar.GZ", now_ms=1) == "1_archive_tar.gz"

    def test_empty_name_falls_back(self):
        assert generate_upload_filename("", now_ms=1) == "1_file"
        assert generate_upload_filename("!!!.png", now_ms=1) == "1_file.png"


def test_format_size_limit():
    assert format_size_limit(100 * 1024 * 1024) == "100 MB"


class TestUploadStorage:
    @pytest.mark.asyncio
    async def test_save_writes_file(self, tmp_path):
        storage = UploadStorage(tmp_path / "uploads")
        stored = await storage.save(make_upload(b"video bytes", "clip.mp4", "video/mp4"), {"video/mp4"}, 1024)

        assert stored["size"] == len(b"video bytes")
        assert stored["mimetype"] == "video/mp4"
        assert stored["path"] == f"/uploads/{stored['filename']}"
        assert (tmp_path / "uploads" / stored["filename"]).read_bytes() == b"video bytes"

    @pytest.mark.asyncio
    async def test_rejects_unsupported_type(self, tmp_path):
        storage = UploadStorage(tmp_path)
        with pytest.raises(BadRequestError):
            await storage.save(make_upload(b"MZ", "tool.exe", "application/octet-stream"), {"video/mp4"}, 1024)

    @pytest.mark.asyncio
    async def test_rejects_oversized_and_cleans_up(self, tmp_path):
        storage = UploadStorage(tmp_path)
        with pytest.raises(BadRequestError) as exc_info:
            await storage.save(make_upload(b"x" * 2048, "big.mp4", "video/mp4"), {"video/mp4"}, 1024)
        assert "too large" in exc_info.value.message
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_rejects_missing_file(self, tmp_path):
        storage = UploadStorage(tmp_path)
        with pytest.raises(BadRequestError):
            await storage.save(None, {"video/mp4"}, 1024)

    def test_local_path_uses_basename_only(self, tmp_path):
        storage = UploadStorage(tmp_path)
        assert storage.local_path_for_url("http://host/uploads/1_a.mp4") == tmp_path / "1_a.mp4"
        assert storage.local_path_for_url("/uploads/../../etc/passwd") == tmp_path / "passwd"
        assert storage.local_path_for_url("") is None
        assert storage.local_path_for_url(None) is None

    def test_remove_files_is_best_effort(self, tmp_path):
        storage = UploadStorage(tmp_path)
        (tmp_path / "1_a.mp4").write_bytes(b"a")

        removed = storage.remove_files(["http://host/uploads/1_a.mp4", "http://host/uploads/missing.png", None])

        assert removed == [tmp_path / "1_a.mp4"]
        assert not (tmp_path / "1_a.mp4").exists()

    def test_remove_files_skips_kept_names(self, tmp_path):
        storage = UploadStorage(tmp_path)
        (tmp_path / "1_a.mp4").write_bytes(b"a")
        (tmp_path / "1_b.png").write_bytes(b"b")

        removed = storage.remove_files(["/uploads/1_a.mp4", "/uploads/1_b.png"], keep={"1_b.png"})

        assert removed == [tmp_path / "1_a.mp4"]
        assert (tmp_path / "1_b.png").exists()
