import unittest
from datetime import date

from cinematch.core.errors import InsufficientInput, SearchFailed
from cinematch.models import CatalogEntry
from cinematch.services.taxonomy import map_to_taxonomy
from cinematch.services.vibe_search import TextVibeEngine, score_candidate

from catalog_fakes import FakeCatalog, instant_scheduler, movie, no_sleep

TODAY = date(2026, 10, 19)


def engine(catalog):
    return TextVibeEngine(catalog, instant_scheduler(), sleep=no_sleep)


class TestScoreCandidate(unittest.TestCase):
    def test_components(self):
        match = map_to_taxonomy("zombie apocalypse", TODAY)
        entry = CatalogEntry(
            id=1,
            title="Zombie Town",
            overview="An apocalypse story",
            genre_ids=frozenset({27, 35}),
            popularity=200.0,
            rating=8.0,
        )
        # two keyword hits, one genre hit (horror), popularity 2, rating 4
        self.assertAlmostEqual(score_candidate(entry, match), 2 * 2 + 3 + 2 + 4)


class TestTextVibeEngine(unittest.IsolatedAsyncioTestCase):
    async def test_results_sorted_non_increasing(self):
        catalog = FakeCatalog(
            discover=[
                movie(1, "Neon Rain", overview="A dark cyberpunk city", genre_ids=[878, 53], popularity=10.0),
                movie(2, "Sunny Days", overview="A beach holiday", genre_ids=[35], popularity=500.0),
                movie(3, "Night", overview="", genre_ids=[27]),
            ],
            search=[movie(1, "Neon Rain", overview="A dark cyberpunk city", genre_ids=[878, 53])],
        )
        results = await engine(catalog).search_by_description("dark rainy cyberpunk city", today=TODAY)
        scores = [r.match_score for r in results]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual(results[0].id, 1)
        # No synopsis, no candidate
        self.assertNotIn(3, [r.id for r in results])

    async def test_genre_pool_uses_first_three_ids(self):
        catalog = FakeCatalog(discover=[movie(i) for i in range(1, 15)])
        await engine(catalog).search_by_description("dark cyberpunk", today=TODAY)
        filters = catalog.calls_to("discover")[0][1][1]
        self.assertEqual(filters["with_genres"], "27,53,80")
        self.assertEqual(filters["vote_count.gte"], 50)
        # Enough unique entries: no fallback pool
        self.assertEqual(len(catalog.calls_to("discover")), 1)

    async def test_fallback_pool_when_sparse(self):
        catalog = FakeCatalog(discover=[movie(1)])
        await engine(catalog).search_by_description("dark cyberpunk in the 90s", today=TODAY)
        calls = catalog.calls_to("discover")
        self.assertEqual(len(calls), 2)
        fallback = calls[1][1][1]
        self.assertEqual(fallback["sort_by"], "vote_average.desc")
        self.assertEqual(fallback["vote_count.gte"], 1000)
        self.assertEqual(fallback["primary_release_date.gte"], "1990-01-01")

    async def test_limit(self):
        catalog = FakeCatalog(discover=[movie(i) for i in range(1, 30)])
        results = await engine(catalog).search_by_description("dark", limit=5, today=TODAY)
        self.assertEqual(len(results), 5)

    async def test_partial_pool_failure_degrades(self):
        catalog = FakeCatalog(search=[movie(7, "Heist")], failing={"discover"})
        results = await engine(catalog).search_by_description("dark heist", today=TODAY)
        self.assertEqual([r.id for r in results], [7])

    async def test_all_pools_failing(self):
        catalog = FakeCatalog(failing={"discover", "search_by_title"})
        with self.assertRaises(SearchFailed):
            await engine(catalog).search_by_description("dark heist", today=TODAY)

    async def test_empty_description(self):
        with self.assertRaises(InsufficientInput):
            await engine(FakeCatalog()).search_by_description("   ")


if __name__ == "__main__":
    unittest.main()
