"""Tests for the HTTP image downloader."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import tempfile
import unittest

import httpx

from geminiterm.downloads import ImageDownloader, generate_filename
from geminiterm.exceptions import NetworkError
from geminiterm.models import Candidate, ModelOutput, WebImage


class FilenameTests(unittest.TestCase):
    def test_url_name_wins_when_it_has_an_extension(self) -> None:
        self.assertEqual(generate_filename("https://x.test/a/cat.png?s=1", "Title", "image/png"), "cat.png")

    def test_title_then_timestamp(self) -> None:
        self.assertEqual(generate_filename("https://x.test/abc", "A: cat", "image/webp"), "A_ cat.webp")
        self.assertEqual(
            generate_filename("https://x.test/abc", "", "image/jpeg", now=datetime(2024, 5, 6, 7, 8, 9)),
            "image_20240506_070809.jpg",
        )


class ImageDownloaderTests(unittest.TestCase):
    """Validate fetching, naming and partial failure handling."""

    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp.cleanup)
        self.directory = self._temp.name
        self.requests: list[httpx.Request] = []

    def _downloader(self, handler) -> ImageDownloader:
        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        downloader = ImageDownloader(http_client=httpx.Client(transport=httpx.MockTransport(record)))
        self.addCleanup(downloader.close)
        return downloader

    @staticmethod
    def _png(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG")

    def test_download_saves_file_with_browser_headers(self) -> None:
        downloader = self._downloader(self._png)
        path = downloader.download(WebImage(url="https://x.test/cat.png"), self.directory)
        self.assertEqual(Path(path).name, "cat.png")
        self.assertEqual(Path(path).read_bytes(), b"\x89PNG")
        self.assertIn("Mozilla", self.requests[0].headers["user-agent"])

    def test_generated_images_request_full_size(self) -> None:
        downloader = self._downloader(self._png)
        downloader.download(WebImage(url="https://x.test/gen", generated=True, title="Sunset"), self.directory)
        downloader.download(WebImage(url="https://x.test/gen", generated=True), self.directory, full_size=False)
        self.assertEqual(str(self.requests[0].url), "https://x.test/gen=s2048")
        self.assertEqual(str(self.requests[1].url), "https://x.test/gen")

    def test_repeated_names_get_numeric_suffix(self) -> None:
        downloader = self._downloader(self._png)
        first = downloader.download(WebImage(url="https://x.test/cat.png"), self.directory)
        second = downloader.download(WebImage(url="https://x.test/cat.png"), self.directory)
        self.assertEqual(Path(first).name, "cat.png")
        self.assertEqual(Path(second).name, "cat_1.png")

    def test_non_image_response_is_rejected(self) -> None:
        downloader = self._downloader(
            lambda request: httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html>")
        )
        with self.assertRaises(NetworkError) as ctx:
            downloader.download(WebImage(url="https://x.test/page"), self.directory)
        self.assertIn("not an image", str(ctx.exception))

    def test_http_status_is_reported(self) -> None:
        downloader = self._downloader(lambda request: httpx.Response(404))
        with self.assertRaises(NetworkError) as ctx:
            downloader.download(WebImage(url="https://x.test/missing.png"), self.directory)
        self.assertEqual(ctx.exception.http_status, 404)

    def test_selected_images_tolerate_partial_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/bad.png":
                return httpx.Response(500)
            return self._png(request)

        downloader = self._downloader(handler)
        output = ModelOutput(
            candidates=[
                Candidate(
                    web_images=[WebImage(url="https://x.test/good.png"), WebImage(url="https://x.test/bad.png")],
                    generated_images=[WebImage(url="https://x.test/gen.png")],
                )
            ]
        )
        with self.assertLogs("geminiterm.downloads", level="WARNING"):
            paths = downloader.download_selected_images(output, [0, 1, 2, 9], self.directory)
        self.assertEqual([Path(p).name for p in paths], ["good.png", "gen.png"])

    def test_selected_images_raise_when_nothing_saved(self) -> None:
        downloader = self._downloader(lambda request: httpx.Response(500))
        output = ModelOutput(candidates=[Candidate(web_images=[WebImage(url="https://x.test/a.png")])])
        with self.assertLogs("geminiterm.downloads", level="WARNING"):
            with self.assertRaises(NetworkError):
                downloader.download_selected_images(output, [0], self.directory)


if __name__ == "__main__":
    unittest.main()
