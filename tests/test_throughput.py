"""Tests for netmetrics.throughput -- download/upload probes and estimates."""

import unittest

import httpx

from netmetrics.models import DOWNLOAD, UPLOAD, EndpointCandidate, ProbeResult
from netmetrics.throughput import DownloadProbe, UploadProbe, build_payload, estimate_upload
from tests.helpers import DOWNLOAD_URLS, UPLOAD_URLS, FakeClock, make_transport, refuse, respond


class TestDownloadProbe(unittest.IsolatedAsyncioTestCase):
    async def _run(self, routes, candidates=None, **kwargs):
        candidates = candidates or [EndpointCandidate(url) for url in DOWNLOAD_URLS]
        async with httpx.AsyncClient(transport=make_transport(routes)) as client:
            probe = DownloadProbe(candidates, client, clock=FakeClock(), **kwargs)
            return await probe.run()

    async def test_n_bytes_over_t_seconds(self):
        result = await self._run({DOWNLOAD_URLS[0]: respond(200, after=2.0, content=b"x" * 5_000_000)})
        self.assertTrue(result.succeeded)
        self.assertEqual(result.kind, DOWNLOAD)
        self.assertAlmostEqual(result.value, (5_000_000 * 8) / (1024 * 1024 * 2.0))
        self.assertEqual(result.endpoint, DOWNLOAD_URLS[0])

    async def test_failover_on_error_status(self):
        result = await self._run({
            DOWNLOAD_URLS[0]: respond(503),
            DOWNLOAD_URLS[1]: respond(200, after=1.0, content=b"x" * 1_048_576),
        })
        self.assertTrue(result.succeeded)
        self.assertAlmostEqual(result.value, 8.0)
        self.assertEqual(result.endpoint, DOWNLOAD_URLS[1])

    async def test_failover_on_connection_error(self):
        result = await self._run({
            DOWNLOAD_URLS[0]: refuse,
            DOWNLOAD_URLS[1]: respond(200, after=0.5, content=b"x" * 1_048_576),
        })
        self.assertAlmostEqual(result.value, 16.0)

    async def test_priority_beats_declaration_order(self):
        candidates = [
            EndpointCandidate(DOWNLOAD_URLS[0], priority=5),
            EndpointCandidate(DOWNLOAD_URLS[1], priority=1),
        ]
        result = await self._run(
            {
                DOWNLOAD_URLS[0]: respond(200, after=1.0, content=b"x" * 100),
                DOWNLOAD_URLS[1]: respond(200, after=1.0, content=b"x" * 200),
            },
            candidates=candidates,
        )
        self.assertEqual(result.endpoint, DOWNLOAD_URLS[1])

    async def test_empty_body_is_candidate_failure(self):
        result = await self._run({
            DOWNLOAD_URLS[0]: respond(200, after=1.0, content=b""),
            DOWNLOAD_URLS[1]: respond(200, after=1.0, content=b"x" * 1_048_576),
        })
        self.assertEqual(result.endpoint, DOWNLOAD_URLS[1])

    async def test_min_bytes_threshold(self):
        result = await self._run(
            {DOWNLOAD_URLS[0]: respond(200, after=1.0, content=b"x" * 10)},
            min_bytes=1000,
        )
        self.assertFalse(result.succeeded)

    async def test_all_fail_reports_zero(self):
        result = await self._run({DOWNLOAD_URLS[0]: respond(500), DOWNLOAD_URLS[1]: refuse})
        self.assertFalse(result.succeeded)
        self.assertEqual(result.value, 0.0)
        self.assertIn("HTTP 500", result.error)

    async def test_transfer_capped_by_max_seconds(self):
        # Every 64 KiB chunk takes a fake second; the cap stops reading after two.
        produced = []

        class SlowStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                for i in range(10):
                    FakeClock.advance(1.0)
                    produced.append(i)
                    yield b"x" * 65_536

        result = await self._run(
            {DOWNLOAD_URLS[0]: lambda request: httpx.Response(200, stream=SlowStream())},
            max_seconds=2.0,
        )
        self.assertTrue(result.succeeded)
        self.assertEqual(len(produced), 2)
        self.assertAlmostEqual(result.value, (2 * 65_536 * 8) / (1024 * 1024 * 2.0))


class TestUploadProbe(unittest.IsolatedAsyncioTestCase):
    async def _run(self, routes, size=1_048_576, fill="zero"):
        candidates = [EndpointCandidate(url, method="POST") for url in UPLOAD_URLS]
        async with httpx.AsyncClient(transport=make_transport(routes)) as client:
            probe = UploadProbe(candidates, client, payload_size=size, fill=fill, clock=FakeClock())
            return await probe.run()

    async def test_measured_upload(self):
        seen = {}

        def sink(request):
            seen["method"] = request.method
            seen["size"] = len(request.content)
            FakeClock.advance(0.25)
            return httpx.Response(200)

        result = await self._run({UPLOAD_URLS[0]: sink})
        self.assertTrue(result.succeeded)
        self.assertEqual(result.kind, UPLOAD)
        self.assertFalse(result.estimated)
        self.assertAlmostEqual(result.value, 32.0)
        self.assertEqual(seen, {"method": "POST", "size": 1_048_576})

    async def test_failover(self):
        result = await self._run({
            UPLOAD_URLS[0]: respond(413),
            UPLOAD_URLS[1]: respond(201, after=1.0),
        })
        self.assertEqual(result.endpoint, UPLOAD_URLS[1])
        self.assertAlmostEqual(result.value, 8.0)

    async def test_all_fail(self):
        result = await self._run({})
        self.assertFalse(result.succeeded)
        self.assertEqual(result.value, 0.0)

    async def test_invalid_payload_size_raises(self):
        with self.assertRaises(ValueError):
            await self._run({}, size=0)


class TestBuildPayload(unittest.TestCase):
    def test_zero_fill(self):
        self.assertEqual(build_payload(8, "zero"), b"\0" * 8)

    def test_random_fill_size(self):
        self.assertEqual(len(build_payload(1024)), 1024)

    def test_non_positive(self):
        with self.assertRaises(ValueError):
            build_payload(-1)


class TestEstimateUpload(unittest.TestCase):
    def test_fraction_of_download(self):
        download = ProbeResult(kind=DOWNLOAD, value=100.0, endpoint="https://dl/")
        result = estimate_upload(download, 0.3)
        self.assertTrue(result.succeeded)
        self.assertTrue(result.estimated)
        self.assertAlmostEqual(result.value, 30.0)
        self.assertIsNone(result.endpoint)

    def test_failed_download(self):
        download = ProbeResult(kind=DOWNLOAD, value=0.0, succeeded=False, error="x")
        result = estimate_upload(download, 0.3)
        self.assertFalse(result.succeeded)
        self.assertFalse(result.estimated)
        self.assertEqual(result.value, 0.0)


if __name__ == "__main__":
    unittest.main()
