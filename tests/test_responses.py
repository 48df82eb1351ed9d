import asyncio

import pytest

from bl702dfu.responses import Response, ResponseAwaiter


@pytest.mark.parametrize("second", [0x00, 0x4B, 0xFF])
def test_two_byte_ack_is_ok(second):
    assert ResponseAwaiter.classify(bytes([0x4F, second])) is Response.OK


@pytest.mark.parametrize("frame", [b"", b"\x15", b"\x4F", b"\x4F\x4B\x00", b"FL", b"\x00\x4F"])
def test_other_frames_are_nok(frame):
    assert ResponseAwaiter.classify(frame) is Response.NOK


@pytest.mark.asyncio
async def test_queued_frame_is_consumed_immediately():
    awaiter = ResponseAwaiter()
    awaiter.on_response(b"\x4F\x00")
    assert await awaiter.wait_once(0.01) is Response.OK
    assert awaiter.queued == 0


@pytest.mark.asyncio
async def test_frame_arriving_during_wait():
    awaiter = ResponseAwaiter()
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, awaiter.on_response, b"\x15")
    assert await awaiter.wait_once(1.0) is Response.NOK


@pytest.mark.asyncio
async def test_one_frame_per_wait():
    awaiter = ResponseAwaiter()
    awaiter.on_response(b"\x4F\x4B")
    awaiter.on_response(b"\x15")
    assert await awaiter.wait_once(0.01) is Response.OK
    assert awaiter.queued == 1
    assert await awaiter.wait_once(0.01) is Response.NOK


@pytest.mark.asyncio
async def test_timeout_leaves_queue_untouched():
    awaiter = ResponseAwaiter()
    assert await awaiter.wait_once(0.02) is Response.TIMED_OUT
    assert awaiter.queued == 0
    assert not awaiter.waiting


@pytest.mark.asyncio
async def test_cancel_resolves_wait_as_nok():
    awaiter = ResponseAwaiter()
    asyncio.get_running_loop().call_later(0.01, awaiter.cancel)
    assert await awaiter.wait_once(1.0) is Response.NOK


@pytest.mark.asyncio
async def test_new_wait_discards_previous_one():
    awaiter = ResponseAwaiter()
    first = asyncio.ensure_future(awaiter.wait_once(1.0))
    await asyncio.sleep(0)
    assert awaiter.waiting
    second = asyncio.ensure_future(awaiter.wait_once(1.0))
    await asyncio.sleep(0)
    assert await first is Response.NOK
    awaiter.on_response(b"\x4F\x4B")
    assert await second is Response.OK


@pytest.mark.asyncio
async def test_frame_cleared_before_resume_is_nok():
    awaiter = ResponseAwaiter()

    def arrive_then_clear():
        awaiter.on_response(b"\x4F\x4B")
        awaiter.clear()

    asyncio.get_running_loop().call_later(0.01, arrive_then_clear)
    assert await awaiter.wait_once(1.0) is Response.NOK
