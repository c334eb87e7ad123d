"""Tests for empolis_sync.batch: sequential processing and failure isolation."""

import pytest

from empolis_sync.batch import BatchOrchestrator
from empolis_sync.errors import ApiError, AuthError, ServiceUnavailable
from empolis_sync.reconcile import ALREADY_CORRECT
from empolis_sync.types import BatchSummary, Failed, FileRecord, Skipped, Updated

from tests.conftest import FakeGateway


def _records(n):
    return [FileRecord(f"page{i}.html", f"Page {i}") for i in range(1, n + 1)]


class ScriptedReconciler:
    """Returns or raises a preset result per filename, recording call order."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls: list[str] = []

    async def reconcile(self, record, data_source):
        self.calls.append(record.filename)
        result = self.results.get(record.filename, Updated({"Title": record.title}))
        if isinstance(result, BaseException):
            raise result
        return result


class TestRunBatch:

    @pytest.mark.asyncio
    async def test_failed_record_does_not_stop_batch(self, data_source):
        reconciler = ScriptedReconciler({
            "page3.html": Failed(ApiError(500, "boom")),
        })
        orchestrator = BatchOrchestrator(FakeGateway(), reconciler)

        summary = await orchestrator.run_batch(_records(5), data_source)

        assert reconciler.calls == [f"page{i}.html" for i in range(1, 6)]
        assert (summary.updated, summary.skipped, summary.failed) == (4, 0, 1)
        assert summary.total == 5
        assert summary.failures == [("page3.html", "HTTP 500: boom")]

    @pytest.mark.asyncio
    async def test_unexpected_exception_counted_as_failure(self, data_source):
        reconciler = ScriptedReconciler({"page2.html": RuntimeError("bad html")})
        summary = await BatchOrchestrator(FakeGateway(), reconciler).run_batch(
            _records(3), data_source,
        )

        assert reconciler.calls == ["page1.html", "page2.html", "page3.html"]
        assert summary.failed == 1
        assert summary.updated == 2
        assert summary.failures == [("page2.html", "bad html")]

    @pytest.mark.asyncio
    async def test_auth_error_aborts(self, data_source):
        reconciler = ScriptedReconciler({"page2.html": AuthError("token rejected")})
        with pytest.raises(AuthError):
            await BatchOrchestrator(FakeGateway(), reconciler).run_batch(_records(4), data_source)
        assert reconciler.calls == ["page1.html", "page2.html"]

    @pytest.mark.asyncio
    async def test_service_outage_mid_batch_aborts(self, data_source):
        reconciler = ScriptedReconciler({"page1.html": ServiceUnavailable(["store"])})
        with pytest.raises(ServiceUnavailable):
            await BatchOrchestrator(FakeGateway(), reconciler).run_batch(_records(2), data_source)
        assert reconciler.calls == ["page1.html"]

    @pytest.mark.asyncio
    async def test_failed_health_check_processes_nothing(self, data_source):
        gw = FakeGateway()
        gw.health_error = ServiceUnavailable(["ingest", "ias"])
        reconciler = ScriptedReconciler()

        with pytest.raises(ServiceUnavailable) as exc_info:
            await BatchOrchestrator(gw, reconciler).run_batch(_records(3), data_source)

        assert exc_info.value.down == ("ingest", "ias")
        assert reconciler.calls == []

    @pytest.mark.asyncio
    async def test_health_check_can_be_skipped(self, data_source):
        gw = FakeGateway()
        gw.health_error = ServiceUnavailable(["ingest"])
        summary = await BatchOrchestrator(gw, ScriptedReconciler()).run_batch(
            _records(1), data_source, check_health=False,
        )
        assert gw.health_checks == 0
        assert summary.updated == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self, data_source):
        gw = FakeGateway()
        summary = await BatchOrchestrator(gw).run_batch([], data_source)
        assert summary.total == 0
        assert gw.health_checks == 1


class TestBatchWithReconciler:

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, data_source):
        link = data_source.download_link
        gw = FakeGateway({
            link("page1.html"): {"FilePath": link("page1.html"), "Title": "Page 1"},
            link("page2.html"): {"FilePath": link("page2.html"), "Title": "Old"},
        })
        summary = await BatchOrchestrator(gw).run_batch(_records(3), data_source)

        # page1 correct, page2 stale, page3 not in the index
        assert (summary.updated, summary.skipped, summary.failed) == (1, 2, 0)
        assert gw.store[link("page2.html")]["Title"] == "Page 2"

    @pytest.mark.asyncio
    async def test_api_error_on_one_record_is_isolated(self, data_source):
        link = data_source.download_link

        class StoreFailsOnPage3(FakeGateway):
            async def get_metadata(self, path):
                if path == link("page3.html"):
                    raise ApiError(500, "store unavailable")
                return await super().get_metadata(path)

        gw = StoreFailsOnPage3({
            link(f"page{i}.html"): {"FilePath": link(f"page{i}.html"), "Title": "Old"}
            for i in range(1, 6)
        })
        summary = await BatchOrchestrator(gw).run_batch(_records(5), data_source)

        assert (summary.updated, summary.skipped, summary.failed) == (4, 0, 1)
        assert summary.failures == [("page3.html", "HTTP 500: store unavailable")]
        assert [e["FilePath"] for e in gw.edits] == [
            link(f"page{i}.html") for i in (1, 2, 4, 5)
        ]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, data_source):
        link = data_source.download_link
        gw = FakeGateway({
            link(f"page{i}.html"): {"FilePath": link(f"page{i}.html"), "Title": "Old"}
            for i in range(1, 4)
        })
        orchestrator = BatchOrchestrator(gw)

        first = await orchestrator.run_batch(_records(3), data_source)
        edits_after_first = len(gw.edits)
        second = await orchestrator.run_batch(_records(3), data_source)

        assert first.updated == 3
        assert second.updated == 0
        assert second.skipped == 3
        assert len(gw.edits) == edits_after_first

    def test_summary_to_dict(self):
        summary = BatchSummary()
        summary.add("a.html", Updated({}))
        summary.add("b.html", Skipped(ALREADY_CORRECT))
        summary.add("c.html", Failed(ApiError(None, "timed out")))

        assert summary.to_dict() == {
            "updated": 1,
            "skipped": 1,
            "failed": 1,
            "failures": [{"filename": "c.html", "error": "timed out"}],
        }
