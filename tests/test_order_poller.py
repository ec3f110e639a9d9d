import asyncio

import httpx

from qrtruck.client import OrderSuccessPoller

ORDER = {"id": "o1", "order_number": "ORD-1", "pickup_code": "0042"}


class FakeApi:
    """Order API that only has the order after a number of lookups."""

    def __init__(self, found_after=None, fallback_status=409):
        self.found_after = found_after
        self.fallback_status = fallback_status
        self.lookups = 0
        self.fallback_calls = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path == "/api/orders":
            self.lookups += 1
            if self.found_after is not None and self.lookups > self.found_after:
                return httpx.Response(200, json={"total": 1, "orders": [ORDER]})
            return httpx.Response(200, json={"total": 0, "orders": []})

        if request.method == "POST" and request.url.path == "/api/orders/create-from-payment":
            self.fallback_calls.append(request.read())
            if self.fallback_status == 200:
                return httpx.Response(200, json={"success": True, "order": ORDER, "message": "ok"})
            return httpx.Response(self.fallback_status, json={"detail": "Order already exists"})

        return httpx.Response(404)


def _run(api, **kwargs):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    async def go():
        transport = httpx.MockTransport(api.handler)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            poller = OrderSuccessPoller(client=http, sleep=fake_sleep, **kwargs)
            return await poller.wait_for_order("ORD-1", "pi_1")

    return asyncio.run(go()), sleeps


def test_found_on_first_lookup():
    api = FakeApi(found_after=0)
    result, sleeps = _run(api)

    assert result.found
    assert result.attempts == 1
    assert not result.fallback_used
    assert sleeps == []


def test_fallback_after_third_miss_creates_order():
    api = FakeApi(found_after=None, fallback_status=200)
    result, sleeps = _run(api)

    assert result.found
    assert result.attempts == 3
    assert result.fallback_used
    assert api.lookups == 3
    assert len(api.fallback_calls) == 1
    assert sleeps == [1.0, 1.0]


def test_conflict_keeps_polling_until_webhook_order_appears():
    api = FakeApi(found_after=5, fallback_status=409)
    result, _ = _run(api)

    assert result.found
    assert result.attempts == 6
    assert result.fallback_used
    assert result.fallback_conflict
    assert len(api.fallback_calls) == 1


def test_gives_up_after_max_attempts():
    api = FakeApi(found_after=None, fallback_status=400)
    result, sleeps = _run(api, max_attempts=5)

    assert not result.found
    assert result.attempts == 5
    assert api.lookups == 5
    # Fallback is tried exactly once
    assert len(api.fallback_calls) == 1
    assert len(sleeps) == 4


def test_no_fallback_without_payment_intent():
    api = FakeApi(found_after=None)

    async def go():
        async def no_sleep(_):
            return None

        transport = httpx.MockTransport(api.handler)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            poller = OrderSuccessPoller(client=http, max_attempts=4, sleep=no_sleep)
            return await poller.wait_for_order("ORD-1")

    result = asyncio.run(go())
    assert not result.found
    assert api.fallback_calls == []


def test_cancelling_stops_polling():
    api = FakeApi(found_after=None)

    async def go():
        parked = asyncio.Event()

        async def park(_):
            parked.set()
            await asyncio.Event().wait()

        transport = httpx.MockTransport(api.handler)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            poller = OrderSuccessPoller(client=http, sleep=park)
            task = asyncio.create_task(poller.wait_for_order("ORD-1", "pi_1"))
            await parked.wait()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                return True
            return False

    assert asyncio.run(go()) is True
    assert api.lookups == 1
    assert api.fallback_calls == []
