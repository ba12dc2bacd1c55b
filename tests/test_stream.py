import asyncio

import pytest

from pokersync.transport.stream import STREAM_OPEN, ReconnectingStream, StreamSignal, backoff_delay_ms


def test_backoff_delay_formula():
    assert [backoff_delay_ms(n) for n in range(1, 8)] == [1000, 2000, 4000, 8000, 16000, 30000, 30000]
    assert backoff_delay_ms(0) == 1000


class Script:
    """Each open() pops one scripted attempt: a list of items, or an exception."""

    def __init__(self, attempts):
        self.attempts = list(attempts)
        self.opens = 0

    async def _gen(self, attempt):
        if isinstance(attempt, Exception):
            raise attempt
        for item in attempt:
            if isinstance(item, Exception):
                raise item
            yield item

    def open(self):
        self.opens += 1
        if not self.attempts:
            return self._forever()
        return self._gen(self.attempts.pop(0))

    async def _forever(self):
        yield STREAM_OPEN
        await asyncio.Event().wait()


class Recorder:
    def __init__(self, stream_ref=None):
        self.delays = []
        self.stream = stream_ref

    async def sleep(self, seconds):
        self.delays.append(round(seconds * 1000))


async def _run_until_idle(stream, script):
    stream.start()
    for _ in range(200):
        await asyncio.sleep(0)
        if not script.attempts:
            break
    for _ in range(20):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_consecutive_failures_double_delay_up_to_cap():
    script = Script([ConnectionError("down")] * 7)
    rec = Recorder()
    stream = ReconnectingStream(script.open, lambda e: None, sleep=rec.sleep, name="t")

    await _run_until_idle(stream, script)
    stream.cancel()
    await stream.wait()

    assert rec.delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]


@pytest.mark.asyncio
async def test_success_resets_delay():
    script = Script(
        [
            ConnectionError("down"),
            ConnectionError("down"),
            [STREAM_OPEN, "a", ConnectionError("dropped")],
            ConnectionError("down"),
        ]
    )
    rec = Recorder()
    seen = []
    stream = ReconnectingStream(script.open, seen.append, sleep=rec.sleep)

    await _run_until_idle(stream, script)
    stream.cancel()
    await stream.wait()

    assert seen == ["a"]
    assert rec.delays == [1000, 2000, 1000, 2000]


@pytest.mark.asyncio
async def test_events_delivered_in_order_and_status_reported():
    statuses = []
    script = Script([[STREAM_OPEN, 1, 2, 3]])
    seen = []
    stream = ReconnectingStream(
        script.open,
        seen.append,
        on_status=lambda c, e: statuses.append((c, e)),
        sleep=Recorder().sleep,
    )

    await _run_until_idle(stream, script)
    stream.cancel()
    await stream.wait()

    assert seen == [1, 2, 3]
    # open -> connected, end of stream -> disconnected with error, reopen -> connected
    assert statuses[0] == (True, None)
    assert statuses[1] == (False, "Connection closed by server")
    assert statuses[2] == (True, None)


@pytest.mark.asyncio
async def test_cancel_stops_without_retry_or_error():
    script = Script([])
    rec = Recorder()
    statuses = []
    stream = ReconnectingStream(
        script.open, lambda e: None, on_status=lambda c, e: statuses.append((c, e)), sleep=rec.sleep
    )
    stream.start()
    for _ in range(5):
        await asyncio.sleep(0)
    assert stream.connected is True

    stream.cancel()
    await stream.wait()

    assert stream.stopped is True
    assert rec.delays == []
    assert script.opens == 1
    assert all(err is None for _, err in statuses)


@pytest.mark.asyncio
async def test_terminal_signal_suppresses_retry():
    script = Script([[STREAM_OPEN, "closed", "ignored"]])
    rec = Recorder()
    seen = []

    async def on_event(e):
        seen.append(e)
        return StreamSignal.TERMINAL if e == "closed" else None

    stream = ReconnectingStream(script.open, on_event, sleep=rec.sleep)
    stream.start()
    await stream.wait()

    assert seen == ["closed"]
    assert rec.delays == []
    assert script.opens == 1
    assert stream.stopped is True
    assert stream.error is None
