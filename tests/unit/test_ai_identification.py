import json
import unittest

import httpx

from cinematch.core.errors import ProviderNotConfigured, UpstreamUnavailable
from cinematch.core.providers import (
    EMBEDDING_DIMENSIONS,
    NOT_IDENTIFIED,
    GeminiProvider,
    OpenAIProvider,
    ProviderRegistry,
)
from cinematch.services.ai_identification import AIIdentifier, Identification, select_frames

from catalog_fakes import FakeCatalog, movie, no_sleep


class StubProvider:
    def __init__(self, name, identify=None, embed=None, error=None):
        self.name = name
        self.identify_result = identify
        self.embed_result = embed
        self.error = error
        self.calls = 0

    async def identify(self, images, prompt):
        self.calls += 1
        if self.error:
            raise self.error
        return self.identify_result

    async def embed(self, text):
        self.calls += 1
        if self.error:
            raise self.error
        return self.embed_result


class TestProviderRegistry(unittest.IsolatedAsyncioTestCase):
    async def test_unconfigured(self):
        registry = ProviderRegistry([])
        self.assertFalse(registry.configured)
        self.assertEqual(await registry.identify([b"img"], "prompt"), NOT_IDENTIFIED)
        with self.assertRaises(ProviderNotConfigured):
            await registry.embed("text")

    async def test_falls_through_to_next_provider(self):
        first = StubProvider("openai", error=httpx.ConnectError("down"))
        second = StubProvider("gemini", identify={"identified": True, "movieTitle": "Alpha"}, embed=[1.0])
        registry = ProviderRegistry([first, second])
        self.assertEqual((await registry.identify([b"img"], "p"))["movieTitle"], "Alpha")
        self.assertEqual(await registry.embed("t"), [1.0])
        self.assertEqual(first.calls, 2)

    async def test_non_object_answer_moves_to_next_provider(self):
        listing = StubProvider("openai", identify=["not", "an", "object"])
        second = StubProvider("gemini", identify={"identified": True, "movieTitle": "Alpha"})
        result = await ProviderRegistry([listing, second]).identify([b"img"], "p")
        self.assertEqual(result["movieTitle"], "Alpha")

    async def test_all_failing(self):
        registry = ProviderRegistry([
            StubProvider("openai", error=httpx.ConnectError("down")),
            StubProvider("gemini", error=ValueError("bad json")),
        ])
        with self.assertRaises(UpstreamUnavailable):
            await registry.identify([b"img"], "p")
        with self.assertRaises(UpstreamUnavailable):
            await registry.embed("t")


class TestHttpProviders(unittest.IsolatedAsyncioTestCase):
    async def test_openai_identify_and_embed(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path.endswith("/chat/completions"):
                content = json.dumps({"identified": True, "movieTitle": "Alpha", "year": 2001})
                return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})
            return httpx.Response(200, json={"data": [{"embedding": [0.5] * EMBEDDING_DIMENSIONS}]})

        provider = OpenAIProvider("sk-test", base_url="https://ai.test/v1", transport=httpx.MockTransport(handler))
        result = await provider.identify([b"\xff\xd8"], "who?")
        self.assertEqual(result["movieTitle"], "Alpha")
        body = json.loads(seen[0].content)
        self.assertEqual(body["response_format"], {"type": "json_object"})
        self.assertTrue(body["messages"][1]["content"][1]["image_url"]["url"].startswith("data:image/jpeg;base64,"))
        self.assertEqual(seen[0].headers["authorization"], "Bearer sk-test")

        vector = await provider.embed("text")
        self.assertEqual(len(vector), EMBEDDING_DIMENSIONS)

    async def test_openai_non_object_content(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "[1, 2]"}}]})

        provider = OpenAIProvider("sk-test", base_url="https://ai.test/v1", transport=httpx.MockTransport(handler))
        with self.assertRaises(ValueError):
            await provider.identify([b"img"], "who?")

    async def test_gemini_embedding_is_padded(self):
        def handler(request):
            self.assertEqual(request.url.params["key"], "g-test")
            return httpx.Response(200, json={"embedding": {"values": [0.1] * 768}})

        provider = GeminiProvider("g-test", base_url="https://gemini.test/v1beta", transport=httpx.MockTransport(handler))
        vector = await provider.embed("text")
        self.assertEqual(len(vector), EMBEDDING_DIMENSIONS)
        self.assertEqual(vector[767], 0.1)
        self.assertEqual(vector[768], 0.0)

    async def test_gemini_identify(self):
        def handler(request):
            payload = json.loads(request.content)
            self.assertIn("inline_data", payload["contents"][0]["parts"][1])
            text = json.dumps({"identified": False, "movieTitle": None})
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

        provider = GeminiProvider("g-test", base_url="https://gemini.test/v1beta", transport=httpx.MockTransport(handler))
        self.assertFalse((await provider.identify([b"img"], "who?"))["identified"])


class TestAIIdentifier(unittest.IsolatedAsyncioTestCase):
    def test_frame_selection(self):
        self.assertEqual(select_frames([b"a", b"b", b"c", b"d", b"e"]), [b"a", b"c", b"e"])
        self.assertEqual(select_frames([b"a", b"b"]), [b"a", b"b"])

    def test_payload_requires_title(self):
        self.assertFalse(Identification.from_payload({"identified": True, "movieTitle": None}).identified)
        parsed = Identification.from_payload({"identified": True, "movieTitle": "Alpha", "year": "1999"})
        self.assertEqual(parsed.year, 1999)

    def test_characters_normalized(self):
        self.assertEqual(Identification.from_payload({"characters": "Neo"}).characters, ["Neo"])
        self.assertEqual(Identification.from_payload({"characters": ["Neo", "Trinity"]}).characters, ["Neo", "Trinity"])
        self.assertEqual(Identification.from_payload({"characters": 3}).characters, [])

    async def test_non_object_answer_degrades(self):
        registry = ProviderRegistry([StubProvider("openai", identify=["not", "an", "object"])])
        identifier = AIIdentifier(registry, FakeCatalog(), sleep=no_sleep)
        identification = await identifier.identify_image(b"x")
        self.assertFalse(identification.identified)
        self.assertEqual(identification.characters, [])

    async def test_unconfigured_degrades_to_not_identified(self):
        identifier = AIIdentifier(ProviderRegistry([]), FakeCatalog(), sleep=no_sleep)
        identification = await identifier.identify_image(b"img")
        self.assertFalse(identification.identified)
        self.assertIsNone(await identifier.resolve(identification))

    async def test_provider_failure_degrades(self):
        registry = ProviderRegistry([StubProvider("openai", error=httpx.ConnectError("down"))])
        identifier = AIIdentifier(registry, FakeCatalog(), sleep=no_sleep)
        self.assertFalse((await identifier.identify_video([b"a", b"b"])).identified)

    async def test_resolve_to_catalog_entry(self):
        registry = ProviderRegistry([
            StubProvider("openai", identify={"identified": True, "movieTitle": "Alpha", "year": 2001, "type": "movie"}),
        ])
        catalog = FakeCatalog(search=[movie(11, "Alpha")])
        identifier = AIIdentifier(registry, catalog, sleep=no_sleep)
        entry = await identifier.resolve(await identifier.identify_image(b"img"))
        self.assertEqual(entry.id, 11)
        self.assertEqual(catalog.calls_to("search_by_title")[0][2]["year"], 2001)


if __name__ == "__main__":
    unittest.main()
