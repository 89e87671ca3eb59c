import asyncio

import fakeredis.aioredis

from faceless.main import job_events
from faceless.store import events_channel


def test_job_events_relays_published_messages():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)

    async def scenario():
        events = job_events(client, "job-1")
        pending = asyncio.ensure_future(events.__anext__())
        await asyncio.sleep(0.1)
        await client.publish(events_channel("job-1"), '{"type": "log", "message": "hi"}')
        frame = await asyncio.wait_for(pending, timeout=5)
        await events.aclose()
        return frame

    assert asyncio.run(scenario()) == 'data: {"type": "log", "message": "hi"}\n\n'


def test_idle_stream_does_not_block_the_event_loop():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    ticks = []

    async def ticker():
        for _ in range(20):
            ticks.append(1)
            await asyncio.sleep(0.01)

    async def scenario():
        events = job_events(client, "job-quiet")
        waiting = asyncio.ensure_future(events.__anext__())
        await asyncio.wait_for(ticker(), timeout=2)
        waiting.cancel()
        try:
            await waiting
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())
    assert len(ticks) == 20
