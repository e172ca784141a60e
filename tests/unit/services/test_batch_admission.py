"""
Unit tests for the Batch Admission Controller.
"""

import asyncio
import random
from typing import Any, Dict

import pytest

from fincalc.core.exceptions import ValidationException
from fincalc.monitoring import metrics
from fincalc.services.batch import (
    BatchAdmissionController,
    BatchOperation,
    BatchRequest,
    BatchStatus,
    InMemoryResourceService,
    ResourceRegistry,
    ResourceService,
)


class InstrumentedService(ResourceService):
    """Resource service with controllable latency and failures."""

    def __init__(self, delays=None, fail_ids=(), hang_ids=()):
        self.delays = delays or {}
        self.fail_ids = set(fail_ids)
        self.hang_ids = set(hang_ids)
        self.in_flight = 0
        self.peak = 0
        self.started = []
        self.finished = []
        self.release = asyncio.Event()

    async def _run(self, data: Dict[str, Any]) -> Dict[str, Any]:
        name = data["name"]
        self.started.append(name)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if name in self.hang_ids:
                await self.release.wait()
            await asyncio.sleep(self.delays.get(name, 0))
            if name in self.fail_ids:
                raise RuntimeError(f"{name} rejected")
            self.finished.append(name)
            return {"name": name}
        finally:
            self.in_flight -= 1

    async def create(self, user_id, data):
        return await self._run(data)

    async def update(self, user_id, resource_id, data):
        return await self._run(data)

    async def delete(self, user_id, resource_id):
        return {"id": resource_id}

    async def read(self, user_id, resource_id):
        return {"id": resource_id}


def make_registry(service: ResourceService) -> ResourceRegistry:
    registry = ResourceRegistry()
    registry.register("account", service, cache_prefixes=["accounts", "networth"])
    return registry


def make_request(names, **options) -> BatchRequest:
    return BatchRequest(
        operations=[
            BatchOperation(id=f"op-{name}", type="create", resource="account", data={"name": name})
            for name in names
        ],
        options=options,
    )


class TestValidation:
    @pytest.fixture
    def controller(self):
        return BatchAdmissionController(make_registry(InMemoryResourceService("account")))

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, controller):
        with pytest.raises(ValidationException, match="cannot be empty"):
            await controller.execute(BatchRequest(operations=[]), "user-1")

    @pytest.mark.asyncio
    async def test_oversized_batch_rejected_without_side_effects(self):
        service = InMemoryResourceService("account")
        controller = BatchAdmissionController(make_registry(service))
        request = make_request([str(n) for n in range(101)])

        with pytest.raises(ValidationException, match="Maximum 100 operations"):
            await controller.execute(request, "user-1")

        assert service.count() == 0

    def test_defaults_applied(self, controller):
        options = controller.validate(make_request(["a"]))

        assert options.continue_on_error is True
        assert options.max_concurrency == 10
        assert options.timeout_ms == 30000

    def test_camel_case_options(self, controller):
        request = BatchRequest.model_validate(
            {
                "operations": [{"id": "1", "type": "read", "resource": "account", "resourceId": "x"}],
                "options": {"continueOnError": False, "maxConcurrency": 4, "timeout": 500},
            }
        )
        options = controller.validate(request)

        assert request.operations[0].resource_id == "x"
        assert (options.continue_on_error, options.max_concurrency, options.timeout_ms) == (False, 4, 500)

    @pytest.mark.parametrize(
        "options",
        [{"maxConcurrency": 0}, {"maxConcurrency": 51}, {"timeout": 0}, {"timeout": 120001}],
    )
    def test_out_of_range_options_rejected(self, controller, options):
        with pytest.raises(ValidationException):
            controller.validate(make_request(["a"], **options))


class TestExecution:
    @pytest.mark.asyncio
    async def test_results_align_with_operations_under_random_latency(self):
        rng = random.Random(42)
        names = [str(n) for n in range(25)]
        service = InstrumentedService(delays={n: rng.uniform(0, 0.02) for n in names})
        controller = BatchAdmissionController(make_registry(service))

        outcome = await controller.execute(make_request(names, maxConcurrency=5), "user-1")

        assert service.finished != names
        assert [r.id for r in outcome.results] == [f"op-{n}" for n in names]
        assert [r.data["name"] for r in outcome.results] == names
        assert outcome.status is BatchStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_never_exceeds_max_concurrency(self):
        names = [str(n) for n in range(10)]
        service = InstrumentedService(delays={n: 0.02 for n in names})
        controller = BatchAdmissionController(make_registry(service))

        outcome = await controller.execute(make_request(names, maxConcurrency=3), "user-1")

        assert service.peak == 3
        assert all(r.success for r in outcome.results)

    @pytest.mark.asyncio
    async def test_partial_failure_with_continue_on_error(self):
        service = InstrumentedService(fail_ids={"b", "d"})
        controller = BatchAdmissionController(make_registry(service))

        outcome = await controller.execute(make_request(list("abcde")), "user-1")

        assert [r.success for r in outcome.results] == [True, False, True, False, True]
        assert outcome.results[1].error == "b rejected"
        assert outcome.status is BatchStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_fail_fast_stops_admission_but_lets_in_flight_finish(self):
        service = InstrumentedService(fail_ids={"a"}, delays={"a": 0.01, "b": 0.03})
        controller = BatchAdmissionController(make_registry(service))
        request = make_request(list("abcde"), continueOnError=False, maxConcurrency=2)

        outcome = await controller.execute(request, "user-1")

        assert service.started == ["a", "b"]
        assert outcome.results[0].success is False
        assert outcome.results[1].success is True
        assert all(r.skipped and not r.success for r in outcome.results[2:])
        assert outcome.status is BatchStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_timeout_returns_partial_results_and_tracks_dangling_work(self):
        service = InstrumentedService(hang_ids={"b"})
        controller = BatchAdmissionController(make_registry(service))

        outcome = await controller.execute(make_request(list("abc"), timeout=50), "user-1")

        assert outcome.status is BatchStatus.TIMEOUT
        assert [r.success for r in outcome.results] == [True, False, True]
        assert outcome.results[1].timed_out
        assert outcome.results[1].error == "Operation timed out"
        assert outcome.outstanding == 1
        assert controller.dangling_count() == 1

        # The hung operation still completes after the response was built
        service.release.set()
        assert await outcome.wait_outstanding(timeout=1)
        assert "b" in service.finished
        assert outcome.results[1].timed_out
        assert controller.dangling_count() == 0

    @pytest.mark.asyncio
    async def test_operations_not_admitted_before_timeout_never_run(self):
        service = InstrumentedService(hang_ids={"a"})
        controller = BatchAdmissionController(make_registry(service))
        request = make_request(list("abc"), maxConcurrency=1, timeout=30)

        outcome = await controller.execute(request, "user-1")
        service.release.set()
        await outcome.wait_outstanding(timeout=1)

        assert all(r.timed_out for r in outcome.results)
        assert service.started == ["a"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stuck_dangling_work(self):
        service = InstrumentedService(hang_ids={"a"})
        controller = BatchAdmissionController(make_registry(service))
        await controller.execute(make_request(["a"], timeout=10), "user-1")

        assert await controller.shutdown(timeout=0.01) == 1
        assert controller.dangling_count() == 0

    @pytest.mark.asyncio
    async def test_unknown_resource_fails_only_its_operation(self):
        controller = BatchAdmissionController(make_registry(InMemoryResourceService("account")))
        request = BatchRequest(
            operations=[
                BatchOperation(id="1", type="create", resource="account", data={"name": "x"}),
                BatchOperation(id="2", type="create", resource="portfolio"),
                BatchOperation(id="3", type="archive", resource="account"),
                BatchOperation(id="4", type="update", resource="account"),
            ]
        )

        outcome = await controller.execute(request, "user-1")

        assert outcome.results[0].success
        assert outcome.results[1].error == "Unsupported resource type: portfolio"
        assert outcome.results[2].error == "Unsupported operation type: archive"
        assert outcome.results[3].error == "Resource ID required for update"

    @pytest.mark.asyncio
    async def test_unregistered_resources_share_one_metric_label(self):
        controller = BatchAdmissionController(make_registry(InMemoryResourceService("account")))
        request = BatchRequest(
            operations=[
                BatchOperation(id=str(n), type="create", resource=f"kind-{n}") for n in range(3)
            ]
        )

        def failed_count(resource):
            return metrics.registry.get_sample_value(
                "fincalc_batch_operations_total",
                {"resource": resource, "outcome": "failed"},
            ) or 0.0

        before = failed_count("unsupported")
        await controller.execute(request, "user-1")

        assert failed_count("unsupported") == before + 3
        assert metrics.registry.get_sample_value(
            "fincalc_batch_operations_total", {"resource": "kind-0", "outcome": "failed"}
        ) is None
