import unittest

from cinematch.core.errors import InsufficientInput, SearchFailed
from cinematch.models import CatalogEntry
from cinematch.services.similarity import (
    GLOBAL_SEARCH_CONFIGS,
    SimilarTitlesService,
    extract_vibes,
    overlap_ratio,
    similarity_score,
    vibe_similarity,
)

from catalog_fakes import FakeCatalog, instant_scheduler, movie, no_sleep

ALPHA_DETAILS = movie(
    1,
    "Alpha",
    genres=[{"id": 28, "name": "Action"}],
    vote_average=8.0,
    keywords={"keywords": [{"id": 1, "name": "dark"}, {"id": 2, "name": "heist"}]},
    credits={"cast": [{"id": 100}, {"id": 101}]},
)
BETA_DETAILS = movie(
    2,
    "Beta",
    genres=[{"id": 35, "name": "Comedy"}],
    vote_average=5.0,
    keywords={"keywords": [{"id": 3, "name": "wedding"}]},
    credits={"cast": [{"id": 200}]},
)


def alpha():
    return CatalogEntry.from_tmdb(ALPHA_DETAILS)


class TestSimilarityScore(unittest.TestCase):
    def test_self_similarity_is_one(self):
        a = alpha()
        self.assertAlmostEqual(similarity_score(a, a), 1.0)

    def test_bounded(self):
        score = similarity_score(alpha(), CatalogEntry.from_tmdb(BETA_DETAILS))
        self.assertGreaterEqual(score, 0.0)
        self.assertLess(score, 1.0)

    def test_overlap_ratio(self):
        self.assertEqual(overlap_ratio({1, 2}, {2, 3, 4}), 1 / 3)
        self.assertEqual(overlap_ratio(set(), set()), 1.0)
        self.assertEqual(overlap_ratio({1}, set()), 0)

    def test_genre_only_entry_matches_itself(self):
        a = CatalogEntry.from_tmdb({"id": 1, "title": "Alpha", "genres": [{"id": 28, "name": "Action"}], "vote_average": 8.0})
        self.assertAlmostEqual(similarity_score(a, a), 1.0)

    def test_missing_rating_defaults(self):
        a = CatalogEntry(id=1, title="A", genre_ids=frozenset({28}), rating=0.0)
        b = CatalogEntry(id=2, title="B", genre_ids=frozenset({35}), rating=6.0)
        # No genre overlap; empty keywords and cast match, rating is 6 vs 6
        self.assertAlmostEqual(similarity_score(a, b), 0.25 + 0.15 + 0.15 + 0.20)

    def test_vibes(self):
        entry = CatalogEntry(id=1, title="X", keywords=frozenset({"dark comedy"}))
        vibes = extract_vibes(entry)
        self.assertEqual(vibes["dark"], 1)
        self.assertEqual(vibes["funny"], 1)
        self.assertEqual(vibes["epic"], 0)

    def test_vibe_similarity_without_keys(self):
        self.assertEqual(vibe_similarity({}, {"dark": 1}), 0.5)


class TestSimilarTitlesService(unittest.IsolatedAsyncioTestCase):
    def service(self, catalog):
        return SimilarTitlesService(catalog, instant_scheduler(), sleep=no_sleep)

    async def test_primary_first_and_scores_sorted(self):
        catalog = FakeCatalog(
            search=[movie(1, "Alpha")],
            details={1: ALPHA_DETAILS, 2: BETA_DETAILS},
            similar=[movie(2, "Beta")],
            recommendations=[movie(1, "Alpha"), movie(2, "Beta")],
        )
        results = await self.service(catalog).find_similar("Alpha")
        self.assertEqual([r.id for r in results], [1, 2])
        self.assertAlmostEqual(results[0].match_score, 1.0)
        self.assertEqual(len(catalog.calls_to("search_by_title")), len(GLOBAL_SEARCH_CONFIGS))

    async def test_candidate_detail_failure_is_skipped(self):
        catalog = FakeCatalog(
            search=[movie(1, "Alpha")],
            details={1: ALPHA_DETAILS},
            similar=[movie(3, "Gamma")],
        )
        self.assertEqual(await self.service(catalog).find_similar("Alpha"), [])

    async def test_no_hits(self):
        self.assertEqual(await self.service(FakeCatalog()).find_similar("nothing"), [])

    async def test_every_region_failing(self):
        catalog = FakeCatalog(failing={"search_by_title"})
        with self.assertRaises(SearchFailed):
            await self.service(catalog).find_similar("Alpha")

    async def test_empty_query(self):
        with self.assertRaises(InsufficientInput):
            await self.service(FakeCatalog()).find_similar("  ")


if __name__ == "__main__":
    unittest.main()
