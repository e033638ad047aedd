"""Unit tests for upload validation and storage."""

from unittest.mock import MagicMock

import pytest
import requests

from app.errors import AppError, RequestValidationFailed
from app.services.uploads import MAX_FILE_SIZE, check_image, fetch_remote_image, format_file_size


class TestCheckImage:
    def test_accepts_png_and_jpeg(self, png_bytes, jpeg_bytes) -> None:
        assert check_image(png_bytes, "a.png", "image/png") == []
        assert check_image(jpeg_bytes, "b.JPEG", "image/jpeg") == []

    def test_rejects_wrong_type_and_extension(self, png_bytes) -> None:
        errors = check_image(png_bytes, "a.gif", "image/gif")
        assert len(errors) == 2

    def test_rejects_oversized(self) -> None:
        errors = check_image(b"\0" * (MAX_FILE_SIZE + 1), "big.png", "image/png")
        assert errors == ["File too large: 10 MB exceeds limit of 10 MB"]

    def test_rejects_bytes_that_are_not_an_image(self) -> None:
        assert check_image(b"definitely not a png", "a.png", "image/png") == [
            "File is not a readable JPEG or PNG image"
        ]


class TestImageStorage:
    def test_save_returns_public_url(self, storage, png_bytes) -> None:
        stored = storage.save(png_bytes, "photo.png", "image/png")
        assert stored.url == f"https://files.test/uploads/{stored.name}"
        assert stored.path.read_bytes() == png_bytes
        assert (stored.format, stored.width, stored.height) == ("png", 8, 6)

    def test_validate_lists_every_bad_file(self, storage, png_bytes) -> None:
        with pytest.raises(RequestValidationFailed) as exc:
            storage.validate([
                ("ok.png", "image/png", png_bytes),
                ("a.txt", "text/plain", b"x"),
                ("b.bmp", "image/bmp", b"x"),
            ])
        assert len(exc.value.errors) == 4
        assert all(e.startswith(("File 2", "File 3")) for e in exc.value.errors)

    def test_save_fetched_uses_content_format(self, storage, jpeg_bytes) -> None:
        stored = storage.save_fetched(jpeg_bytes, "https://x/image-without-extension")
        assert stored.name.endswith(".jpg")

    def test_save_fetched_rejects_non_image(self, storage) -> None:
        with pytest.raises(AppError) as exc:
            storage.save_fetched(b"<html>", "https://x/page")
        assert exc.value.status_code == 400


class TestFetchRemoteImage:
    def _http(self, status=200, content=b"data", ctype="image/png"):
        http = MagicMock()
        resp = MagicMock()
        resp.status_code = status
        resp.content = content
        resp.headers = {"Content-Type": ctype}
        http.get.return_value = resp
        return http

    def test_success(self) -> None:
        assert fetch_remote_image("https://x/1.png", session=self._http()) == (b"data", "image/png")

    def test_client_error_is_400(self) -> None:
        with pytest.raises(AppError) as exc:
            fetch_remote_image("https://x/1.png", session=self._http(status=404))
        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid image URL"

    def test_server_error_is_502(self) -> None:
        with pytest.raises(AppError) as exc:
            fetch_remote_image("https://x/1.png", session=self._http(status=500))
        assert exc.value.status_code == 502

    def test_network_error(self) -> None:
        http = MagicMock()
        http.get.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(AppError) as exc:
            fetch_remote_image("https://x/1.png", session=http)
        assert exc.value.status_code == 502


def test_format_file_size() -> None:
    assert format_file_size(512) == "512 Bytes"
    assert format_file_size(1536) == "1.5 KB"
