import os
import shutil
import tempfile
import unittest

from cinematch.services.poster_cache import PosterCache

from catalog_fakes import FakeCatalog, SleepRecorder


class TestPosterCache(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cache_dir = tempfile.mkdtemp()
        self.sleep = SleepRecorder()
        self.cache = PosterCache(self.cache_dir, sleep=self.sleep)

    def tearDown(self):
        shutil.rmtree(self.cache_dir, ignore_errors=True)

    def test_put_get(self):
        self.assertIsNone(self.cache.get(42))
        self.cache.put(42, b"poster")
        self.assertEqual(self.cache.get(42), b"poster")
        self.assertEqual(sorted(os.listdir(self.cache_dir)), ["42.jpg"])

    async def test_fetch_reads_through(self):
        catalog = FakeCatalog(images={"/a.jpg": b"bytes"})
        self.assertEqual(await self.cache.fetch(7, "/a.jpg", catalog), b"bytes")
        self.assertEqual(await self.cache.fetch(7, "/a.jpg", catalog), b"bytes")
        self.assertEqual(len(catalog.calls_to("fetch_image")), 1)

    async def test_fetch_failure_returns_none(self):
        catalog = FakeCatalog(failing={"fetch_image"})
        self.assertIsNone(await self.cache.fetch(7, "/a.jpg", catalog))
        self.assertEqual(len(catalog.calls_to("fetch_image")), 3)
        self.assertEqual(self.sleep.calls, [1.0, 2.0])
        self.assertIsNone(self.cache.get(7))


if __name__ == "__main__":
    unittest.main()
