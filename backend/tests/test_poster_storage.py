import unittest

import httpx

from cinema.services.poster_storage import (
    PosterMirror,
    PosterStorageError,
    build_source_candidates,
    ext_from_content_type,
    is_storage_backed,
    to_image_url,
)

SUPABASE_URL = "https://demo.supabase.co"


def _mirror(handler) -> PosterMirror:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PosterMirror(SUPABASE_URL, "service-key", "posters", client=client)


class TestPosterUrls(unittest.TestCase):
    def test_relative_path_becomes_tmdb_url(self) -> None:
        self.assertEqual(to_image_url("abc.jpg", "w200"), "https://image.tmdb.org/t/p/w200/abc.jpg")

    def test_tmdb_url_is_resized(self) -> None:
        self.assertEqual(
            to_image_url("https://image.tmdb.org/t/p/original/abc.jpg", "w500"),
            "https://image.tmdb.org/t/p/w500/abc.jpg",
        )

    def test_proxies_only_for_tmdb_sources(self) -> None:
        self.assertEqual(len(build_source_candidates("/abc.jpg", "w500")), 3)
        self.assertEqual(build_source_candidates("https://cdn.example.com/a.jpg", "w500"), ["https://cdn.example.com/a.jpg"])

    def test_storage_backed_detection(self) -> None:
        self.assertTrue(is_storage_backed({"posterPath": f"{SUPABASE_URL}/storage/v1/object/public/posters/1/w500.jpg"}))
        self.assertFalse(is_storage_backed({"posterPath": "/abc.jpg"}))
        self.assertFalse(is_storage_backed("junk"))

    def test_extension_from_content_type(self) -> None:
        self.assertEqual(ext_from_content_type("image/png"), "png")
        self.assertEqual(ext_from_content_type("image/webp"), "webp")
        self.assertEqual(ext_from_content_type(None), "jpg")


class TestPosterMirror(unittest.IsolatedAsyncioTestCase):
    async def test_missing_bucket_is_created_public(self) -> None:
        seen: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(404, json={"error": "Bucket not found"})
            return httpx.Response(200, json={"name": "posters"})

        await _mirror(handler).ensure_bucket()
        self.assertEqual(
            seen,
            [("GET", "/storage/v1/bucket/posters"), ("POST", "/storage/v1/bucket")],
        )

    async def test_private_bucket_is_made_public(self) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            if request.method == "GET":
                return httpx.Response(200, json={"id": "posters", "public": False})
            return httpx.Response(200, json={"message": "Successfully updated"})

        await _mirror(handler).ensure_bucket()
        self.assertEqual(methods, ["GET", "PUT"])

    async def test_bucket_create_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(404)
            return httpx.Response(403, json={"message": "new row violates row-level security"})

        with self.assertRaises(PosterStorageError):
            await _mirror(handler).ensure_bucket()

    async def test_posters_are_uploaded_with_upsert(self) -> None:
        uploads: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "image.tmdb.org":
                return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})
            uploads.append(request)
            return httpx.Response(200, json={"Key": request.url.path})

        mirror = _mirror(handler)
        movie = await mirror.ensure_posters({"id": 155, "title": "The Dark Knight", "posterPath": "/abc.jpg"})

        self.assertEqual(movie["posterPath"], f"{SUPABASE_URL}/storage/v1/object/public/posters/155/w500.png")
        self.assertEqual(movie["posterThumbPath"], f"{SUPABASE_URL}/storage/v1/object/public/posters/155/w200.png")
        self.assertEqual(movie["posterSource"], "storage")
        self.assertEqual([r.url.path for r in uploads], [
            "/storage/v1/object/posters/155/w500.png",
            "/storage/v1/object/posters/155/w200.png",
        ])
        self.assertEqual(uploads[0].headers["x-upsert"], "true")
        self.assertEqual(mirror.diagnostics, [])

    async def test_legacy_movie_without_id_is_left_alone(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        legacy = {"title": "Old Row", "posterPath": "/legacy.jpg"}
        with self.assertLogs("cinema.services.poster_storage", level="WARNING"):
            movie = await _mirror(handler).ensure_posters(legacy)

        self.assertEqual(movie, legacy)
        self.assertEqual(requests, [])

    async def test_unreachable_poster_keeps_tmdb_path_and_records_diagnostic(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        mirror = _mirror(handler)
        movie = await mirror.ensure_posters({"id": 155, "title": "The Dark Knight", "posterPath": "/abc.jpg"})

        self.assertEqual(movie["posterPath"], "/abc.jpg")
        self.assertEqual(movie["posterSource"], "tmdb")
        self.assertIsNone(movie["posterStoragePath"])
        self.assertEqual(len(mirror.diagnostics), 2)
        self.assertEqual(mirror.diagnostics[0].error, "fetch_http_404")
        self.assertIn("wsrv.nl", mirror.diagnostics[0].source_url)
