import asyncio
from contextlib import aclosing

import httpx
import pytest
from google.protobuf import struct_pb2, wrappers_pb2

from application.services.feed_service import (
    FEED_METHODS,
    LIVE_FEED,
    NEAREST_FLIGHTS,
    FeedMethod,
    FeedService,
    encode_request,
    resolve_method,
)
from application.services.projection import ResponseProjection
from conftest import ChunkedStream, Recorder, data_frame, split_bytes, trailer_frame
from infrastructure.external.grpc_web.codec import encode_frame, encode_message
from infrastructure.external.grpc_web.exceptions import (
    CompressedFrameError,
    EmptyFrameError,
    EmptyPayloadError,
    ProtocolError,
    ShortFrameError,
)


EMPTY_DATA_FRAME = b"\x00\x00\x00\x00\x00"


def _msg(text: str) -> wrappers_pb2.StringValue:
    return wrappers_pb2.StringValue(value=text)


class TestProjection:
    def test_projects_message(self):
        raw = encode_message(_msg("abc"))
        assert ResponseProjection(wrappers_pb2.StringValue).project(raw).value == "abc"

    @pytest.mark.parametrize("raw", [EMPTY_DATA_FRAME, b""])
    def test_empty_is_error_by_default(self, raw):
        with pytest.raises((EmptyPayloadError, EmptyFrameError)):
            ResponseProjection(struct_pb2.Struct).project(raw)

    @pytest.mark.parametrize("raw", [EMPTY_DATA_FRAME, b""])
    def test_empty_ok_yields_empty_message(self, raw):
        result = ResponseProjection(struct_pb2.Struct, empty_ok=True).project(raw)
        assert result == struct_pb2.Struct()
        assert len(result.fields) == 0

    def test_empty_ok_does_not_hide_other_errors(self):
        projection = ResponseProjection(struct_pb2.Struct, empty_ok=True)
        with pytest.raises(ShortFrameError):
            projection.project(b"\x00\x00")
        with pytest.raises(ProtocolError):
            projection.project(trailer_frame("grpc-status: 7\ngrpc-message: denied\n"))


class TestMethodCatalog:
    def test_only_nearest_flights_is_exempt(self):
        exempt = [m.name for m in FEED_METHODS.values() if m.empty_ok]
        assert exempt == ["NearestFlights"]

    def test_follow_flight_is_streaming(self):
        assert FEED_METHODS["FollowFlight"].streaming

    def test_resolve(self):
        assert resolve_method("NearestFlights") is NEAREST_FLIGHTS
        assert resolve_method(LIVE_FEED) is LIVE_FEED
        assert resolve_method("Unknown") == FeedMethod("Unknown")

    def test_encode_request_accepts_bytes_and_messages(self):
        assert encode_request(b"\x08\x01") == encode_frame(b"\x08\x01")
        assert encode_request(_msg("x")) == encode_message(_msg("x"))


@pytest.mark.asyncio
class TestUnaryCalls:
    async def test_call_projects_response(self, make_client):
        recorder = Recorder()
        client = make_client(lambda request: httpx.Response(200, content=encode_message(_msg("LH123"))), recorder)
        service = FeedService(client)

        result = await service.call("FlightDetails", _msg("req"), wrappers_pb2.StringValue)

        assert result.value == "LH123"
        assert recorder.last.url.path.endswith("/FlightDetails")
        assert recorder.last.content == encode_message(_msg("req"))

    async def test_nearest_flights_zero_results(self, make_client):
        client = make_client(lambda request: httpx.Response(200, content=EMPTY_DATA_FRAME))
        service = FeedService(client)

        result = await service.nearest_flights(b"", struct_pb2.ListValue)

        assert result == struct_pb2.ListValue()
        assert len(result.values) == 0

    async def test_nearest_flights_empty_body(self, make_client):
        client = make_client(lambda request: httpx.Response(200, content=b""))
        service = FeedService(client)

        result = await service.call("NearestFlights", b"", struct_pb2.ListValue)

        assert len(result.values) == 0

    async def test_other_methods_reject_empty_payload(self, make_client):
        client = make_client(lambda request: httpx.Response(200, content=EMPTY_DATA_FRAME))
        service = FeedService(client)

        with pytest.raises(EmptyPayloadError):
            await service.call("TopFlights", b"", struct_pb2.ListValue)

    async def test_trailer_error_surfaces(self, make_client):
        body = trailer_frame("grpc-status: 16\ngrpc-message: login required\n")
        client = make_client(lambda request: httpx.Response(200, content=body))
        service = FeedService(client)

        with pytest.raises(ProtocolError) as ei:
            await service.call("LiveFeed", b"", struct_pb2.Struct)

        assert ei.value.status == "16"
        assert ei.value.status_message == "login required"

    async def test_streaming_method_rejected_for_call(self, make_client):
        service = FeedService(make_client(lambda request: httpx.Response(200)))
        with pytest.raises(ValueError):
            await service.call("FollowFlight", b"", struct_pb2.Struct)


@pytest.mark.asyncio
class TestFollow:
    async def test_yields_messages_in_order(self, make_client):
        frames = [encode_message(_msg(f"update-{i}")) for i in range(6)]
        stream = ChunkedStream(split_bytes(b"".join(frames), 2))
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        values = [m.value async for m in service.follow_flight(b"", wrappers_pb2.StringValue)]

        assert values == [f"update-{i}" for i in range(6)]
        assert stream.closed

    async def test_ok_trailer_ends_stream(self, make_client):
        wire = encode_message(_msg("a")) + trailer_frame("grpc-status: 0\n") + encode_message(_msg("late"))
        stream = ChunkedStream([wire])
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        values = [m.value async for m in service.follow_flight(b"", wrappers_pb2.StringValue)]

        assert values == ["a"]
        assert stream.closed

    async def test_error_trailer_raises(self, make_client):
        wire = encode_message(_msg("a")) + trailer_frame("grpc-status: 5\ngrpc-message: flight not found\n")
        stream = ChunkedStream([wire])
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        values = []
        with pytest.raises(ProtocolError) as ei:
            async for m in service.follow_flight(b"", wrappers_pb2.StringValue):
                values.append(m.value)

        assert values == ["a"]
        assert ei.value.status_message == "flight not found"
        assert stream.closed

    async def test_undecodable_payload_skipped(self, make_client):
        wire = encode_message(_msg("a")) + data_frame(b"\x0a\x05ab") + encode_message(_msg("b"))
        stream = ChunkedStream([wire])
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        values = [m.value async for m in service.follow_flight(b"", wrappers_pb2.StringValue)]

        assert values == ["a", "b"]

    async def test_frame_error_terminates(self, make_client):
        wire = encode_message(_msg("a")) + b"\x01\x00\x00\x00\x01z" + encode_message(_msg("b"))
        stream = ChunkedStream([wire])
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        values = []
        with pytest.raises(CompressedFrameError):
            async for m in service.follow_flight(b"", wrappers_pb2.StringValue):
                values.append(m.value)

        assert values == ["a"]
        assert stream.closed

    async def test_once_stops_after_first_message(self, make_client):
        stream = ChunkedStream([], forever=lambda n: encode_message(_msg(f"tick-{n}")))
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        values = [m.value async for m in service.follow_flight(b"", wrappers_pb2.StringValue, once=True)]

        assert values == ["tick-0"]
        assert stream.closed

    async def test_deadline_ends_stream(self, make_client):
        stream = ChunkedStream([], forever=lambda n: encode_message(_msg("tick")))
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        async def consume():
            return [m.value async for m in service.follow_flight(b"", wrappers_pb2.StringValue, deadline=0.05)]

        values = await asyncio.wait_for(consume(), timeout=2.0)

        assert set(values) <= {"tick"}
        assert stream.closed

    async def test_early_break_closes_connection_with_aclosing(self, make_client):
        stream = ChunkedStream([], forever=lambda n: encode_message(_msg(f"tick-{n}")))
        service = FeedService(make_client(lambda request: httpx.Response(200, stream=stream)))

        async with aclosing(service.follow_flight(b"", wrappers_pb2.StringValue)) as updates:
            async for message in updates:
                assert message.value == "tick-0"
                break

        assert stream.closed
