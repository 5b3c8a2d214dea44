import shutil
import tempfile
import unittest
from unittest import mock

from PIL import Image

from cinematch.core.errors import InsufficientInput, SearchFailed
from cinematch.services.image_matching import ImageMatchEngine
from cinematch.services.poster_cache import PosterCache

from catalog_fakes import FakeCatalog, gradient_png, instant_scheduler, movie, no_sleep, solid_png


class ImageMatchTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cache_dir = tempfile.mkdtemp()
        self.cache = PosterCache(self.cache_dir, sleep=no_sleep)
        self.poster = gradient_png()

    def tearDown(self):
        shutil.rmtree(self.cache_dir, ignore_errors=True)

    def engine(self, catalog):
        return ImageMatchEngine(catalog, self.cache, instant_scheduler(), sleep=no_sleep)


class TestImageMatch(ImageMatchTestCase):
    async def test_cached_identical_poster_identified(self):
        self.cache.put(42, self.poster)
        catalog = FakeCatalog(discover=[movie(42, "The Answer"), movie(7, "No Poster", poster_path=None)])
        result = await self.engine(catalog).match_image(self.poster)
        self.assertTrue(result.identified)
        self.assertEqual(result.confidence, "high")
        self.assertEqual(result.identified_movie.id, 42)
        self.assertAlmostEqual(result.identified_movie.match_score, 100)
        self.assertAlmostEqual(result.identified_movie.hash_similarity, 100)
        # cached poster, nothing downloaded
        self.assertEqual(catalog.calls_to("fetch_image"), [])

    async def test_poster_downloaded_and_cached_on_miss(self):
        catalog = FakeCatalog(discover=[movie(5, "Fetched")], images={"/poster5.jpg": self.poster})
        result = await self.engine(catalog).match_image(self.poster)
        self.assertEqual(result.identified_movie.id, 5)
        self.assertEqual(self.cache.get(5), self.poster)

    async def test_exclude_id_and_noise_floor(self):
        self.cache.put(42, self.poster)
        self.cache.put(8, solid_png((0, 0, 255)))
        catalog = FakeCatalog(discover=[movie(42), movie(8)])
        result = await self.engine(catalog).match_image(self.poster, exclude_id=42)
        self.assertFalse(result.identified)
        self.assertEqual(result.confidence, "low")
        self.assertNotIn(42, [c.id for c in result.alternative_results])
        for candidate in result.alternative_results:
            self.assertGreater(candidate.match_score, 25)

    async def test_ranked_non_increasing(self):
        self.cache.put(1, self.poster)
        self.cache.put(2, gradient_png(mode="vertical"))
        self.cache.put(3, solid_png((200, 200, 200)))
        catalog = FakeCatalog(discover=[movie(1), movie(2), movie(3)])
        result = await self.engine(catalog).match_image(self.poster)
        scores = [result.identified_movie.match_score] + [c.match_score for c in result.alternative_results]
        self.assertEqual(scores, sorted(scores, reverse=True))

    async def test_unreadable_poster_is_skipped(self):
        self.cache.put(1, b"garbage")
        self.cache.put(2, self.poster)
        catalog = FakeCatalog(discover=[movie(1), movie(2)])
        result = await self.engine(catalog).match_image(self.poster)
        self.assertEqual(result.identified_movie.id, 2)

    async def test_oversized_poster_is_skipped(self):
        small = solid_png((200, 0, 0), size=(8, 8))
        self.cache.put(1, self.poster)
        self.cache.put(2, small)
        catalog = FakeCatalog(discover=[movie(1), movie(2)])
        # 256x256 poster is past twice the pixel limit; the 8x8 query is not
        with mock.patch.object(Image, "MAX_IMAGE_PIXELS", 100):
            result = await self.engine(catalog).match_image(small)
        self.assertEqual(result.identified_movie.id, 2)
        self.assertNotIn(1, [c.id for c in result.alternative_results])

    async def test_pool_failure(self):
        catalog = FakeCatalog(failing={"discover"})
        with self.assertRaises(SearchFailed):
            await self.engine(catalog).match_image(self.poster)

    async def test_bad_query_image(self):
        with self.assertRaises(InsufficientInput):
            await self.engine(FakeCatalog()).match_image(b"nope")


class TestVideoMatch(ImageMatchTestCase):
    async def test_frames_aggregate(self):
        self.cache.put(42, self.poster)
        catalog = FakeCatalog(discover=[movie(42)])
        result = await self.engine(catalog).match_video([self.poster, self.poster, b"broken"])
        self.assertTrue(result.identified)
        self.assertEqual(result.confidence, "high")
        self.assertEqual(result.identified_movie.frame_matches, 2)
        self.assertAlmostEqual(result.identified_movie.match_score, 100)
        self.assertEqual(result.matching_method, "computer_vision_video")
        self.assertEqual(result.frames_analyzed, 2)
        # the corpus is built once for all frames
        self.assertEqual(len(catalog.calls_to("discover")), 1)

    async def test_alternative_hits_count_half(self):
        self.cache.put(42, self.poster)
        self.cache.put(9, gradient_png(mode="vertical"))
        catalog = FakeCatalog(discover=[movie(42), movie(9)])
        engine = self.engine(catalog)
        single = await engine.match_image(self.poster)
        alt = {c.id: c.match_score for c in single.alternative_results}
        video = await engine.match_video([self.poster])
        aggregated = {c.id: c.match_score for c in video.alternative_results}
        self.assertIn(9, alt)
        self.assertAlmostEqual(aggregated[9], alt[9] / 2)

    async def test_no_frames(self):
        with self.assertRaises(InsufficientInput):
            await self.engine(FakeCatalog()).match_video([])


if __name__ == "__main__":
    unittest.main()
