from __future__ import annotations

import json
from unittest.mock import patch, AsyncMock

import pytest
import respx
import httpx

from sourcehealth.models.schemas import Endpoint, SearchOutcome
from sourcehealth.pipeline.prober import (
    MalformedBody,
    ProbeOptions,
    check_reachable,
    check_search,
    classify_search_body,
    probe_endpoint,
)

URL = "https://src.example.com/api.php/provide/vod"
HOST = "src.example.com"
PATH = "/api.php/provide/vod"
KEYWORD = "斗罗大陆"


def _options(**overrides) -> ProbeOptions:
    values = dict(timeout_ms=1000, max_retry=3, retry_delay_ms=0, search_keyword=KEYWORD)
    values.update(overrides)
    return ProbeOptions(**values)


def _search_body(*names: str) -> dict:
    return {"code": 1, "list": [{"vod_id": i, "vod_name": n} for i, n in enumerate(names)]}


class TestClassifySearchBody:
    def test_match(self):
        assert classify_search_body(_search_body("斗罗大陆 第二季"), KEYWORD) == SearchOutcome.MATCH

    def test_no_match(self):
        assert classify_search_body(_search_body("Other Show"), KEYWORD) == SearchOutcome.NO_MATCH

    def test_empty_list(self):
        assert classify_search_body({"list": []}, KEYWORD) == SearchOutcome.EMPTY

    def test_missing_list(self):
        assert classify_search_body({"code": 0}, KEYWORD) == SearchOutcome.EMPTY

    def test_keyword_spanning_items_matches_compact_form(self):
        assert classify_search_body({"list": [1, 2]}, "1,2") == SearchOutcome.MATCH

    def test_non_object_body(self):
        with pytest.raises(MalformedBody):
            classify_search_body(["not", "an", "object"], KEYWORD)


class TestCheckReachable:
    @pytest.mark.asyncio
    @respx.mock
    async def test_ok_on_200(self):
        route = respx.get(URL).mock(return_value=httpx.Response(200, text="ok"))

        async with httpx.AsyncClient() as client:
            assert await check_reachable(client, URL, _options()) is True
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_every_attempt_times_out(self):
        route = respx.get(URL).mock(side_effect=httpx.ConnectTimeout("Timed out"))

        async with httpx.AsyncClient() as client:
            assert await check_reachable(client, URL, _options(max_retry=3)) is False
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_non_200(self):
        route = respx.get(URL).mock(return_value=httpx.Response(503))

        async with httpx.AsyncClient() as client:
            assert await check_reachable(client, URL, _options(max_retry=4)) is False
        assert route.call_count == 4

    @pytest.mark.asyncio
    @respx.mock
    async def test_recovers_after_transient_failure(self):
        route = respx.get(URL).mock(
            side_effect=[httpx.ConnectError("Connection refused"), httpx.Response(200)]
        )

        async with httpx.AsyncClient() as client:
            assert await check_reachable(client, URL, _options()) is True
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_single_attempt_when_max_retry_is_one(self):
        route = respx.get(URL).mock(side_effect=httpx.ReadTimeout("Timed out"))

        async with httpx.AsyncClient() as client:
            assert await check_reachable(client, URL, _options(max_retry=1)) is False
        assert route.call_count == 1


class TestCheckSearch:
    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_keyword_param(self):
        route = respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, json=_search_body("斗罗大陆"))
        )

        async with httpx.AsyncClient() as client:
            outcome = await check_search(client, URL, _options())

        assert outcome == SearchOutcome.MATCH
        request = route.calls.last.request
        assert request.url.params["wd"] == KEYWORD
        # Keyword travels percent-encoded
        assert "%E6%96%97" in str(request.url)

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_match(self):
        respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, json=_search_body("Something else"))
        )

        async with httpx.AsyncClient() as client:
            assert await check_search(client, URL, _options()) == SearchOutcome.NO_MATCH

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty(self):
        respx.get(host=HOST, path=PATH).mock(return_value=httpx.Response(200, json={"list": []}))

        async with httpx.AsyncClient() as client:
            assert await check_search(client, URL, _options()) == SearchOutcome.EMPTY

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_after_retrying_bad_status(self):
        route = respx.get(host=HOST, path=PATH).mock(return_value=httpx.Response(500))

        async with httpx.AsyncClient() as client:
            assert await check_search(client, URL, _options()) == SearchOutcome.ERROR
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_on_non_json_body(self):
        route = respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, text="<html>maintenance</html>")
        )

        async with httpx.AsyncClient() as client:
            assert await check_search(client, URL, _options(max_retry=2)) == SearchOutcome.ERROR
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_on_array_body(self):
        respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, content=json.dumps([1, 2]).encode())
        )

        async with httpx.AsyncClient() as client:
            assert await check_search(client, URL, _options()) == SearchOutcome.ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_on_deeply_nested_body(self):
        route = respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, content=b"[" * 200000)
        )

        async with httpx.AsyncClient() as client:
            assert await check_search(client, URL, _options(max_retry=2)) == SearchOutcome.ERROR
        assert route.call_count == 2


class TestProbeEndpoint:
    @pytest.mark.asyncio
    async def test_disabled_endpoint_makes_no_request(self):
        endpoint = Endpoint(name="Off", base_url=URL, disabled=True)

        with respx.mock(assert_all_called=False) as router:
            route = router.route().mock(return_value=httpx.Response(200))
            async with httpx.AsyncClient() as client:
                result = await probe_endpoint(client, endpoint, _options())

        assert not route.called
        assert result.reachable is False
        assert result.search_outcome == SearchOutcome.DISABLED
        assert result.endpoint_key == URL

    @pytest.mark.asyncio
    @respx.mock
    async def test_reachable_with_match(self):
        respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, json=_search_body("斗罗大陆"))
        )
        endpoint = Endpoint(name="Main", base_url=URL)

        async with httpx.AsyncClient() as client:
            result = await probe_endpoint(client, endpoint, _options())

        assert result.reachable is True
        assert result.search_outcome == SearchOutcome.MATCH
        assert result.name == "Main"

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_runs_even_when_unreachable(self):
        def respond(request: httpx.Request) -> httpx.Response:
            if "wd" in request.url.params:
                return httpx.Response(200, json=_search_body("斗罗大陆"))
            return httpx.Response(502)

        route = respx.get(host=HOST, path=PATH).mock(side_effect=respond)
        endpoint = Endpoint(name="Main", base_url=URL)

        async with httpx.AsyncClient() as client:
            result = await probe_endpoint(client, endpoint, _options())

        assert result.reachable is False
        assert result.search_outcome == SearchOutcome.MATCH
        # 3 reachability attempts + 1 successful search
        assert route.call_count == 4

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_disabled_is_skipped(self):
        route = respx.get(host=HOST, path=PATH).mock(return_value=httpx.Response(200))
        endpoint = Endpoint(name="Main", base_url=URL)

        async with httpx.AsyncClient() as client:
            result = await probe_endpoint(client, endpoint, _options(enable_search_test=False))

        assert result.reachable is True
        assert result.search_outcome == SearchOutcome.SKIPPED
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_attempts_time_out(self):
        route = respx.get(host=HOST, path=PATH).mock(side_effect=httpx.ConnectTimeout("Timed out"))
        endpoint = Endpoint(name="Main", base_url=URL)

        async with httpx.AsyncClient() as client:
            result = await probe_endpoint(client, endpoint, _options(max_retry=3))

        assert result.reachable is False
        assert result.search_outcome == SearchOutcome.ERROR
        # Two checks, three attempts each
        assert route.call_count == 6

    @pytest.mark.asyncio
    async def test_invalid_url_does_not_escape(self):
        endpoint = Endpoint(name="Broken", base_url="not a url at all")

        async with httpx.AsyncClient() as client:
            result = await probe_endpoint(client, endpoint, _options())

        assert result.reachable is False
        assert result.search_outcome == SearchOutcome.ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_nested_search_body_keeps_reachability(self):
        route = respx.get(host=HOST, path=PATH).mock(
            return_value=httpx.Response(200, content=b"[" * 200000)
        )
        endpoint = Endpoint(name="Main", base_url=URL)

        async with httpx.AsyncClient() as client:
            result = await probe_endpoint(client, endpoint, _options(max_retry=3))

        assert result.reachable is True
        assert result.search_outcome == SearchOutcome.ERROR
        # 1 reachability attempt + 3 search attempts
        assert route.call_count == 4

    @pytest.mark.asyncio
    @respx.mock
    async def test_crashing_search_check_keeps_reachability(self):
        respx.get(URL).mock(return_value=httpx.Response(200))
        endpoint = Endpoint(name="Main", base_url=URL)

        with patch(
            "sourcehealth.pipeline.prober.check_search",
            new_callable=AsyncMock,
            side_effect=RuntimeError("boom"),
        ):
            async with httpx.AsyncClient() as client:
                result = await probe_endpoint(client, endpoint, _options())

        assert result.reachable is True
        assert result.search_outcome == SearchOutcome.ERROR

    @pytest.mark.asyncio
    async def test_crashing_reachability_check_keeps_search(self):
        endpoint = Endpoint(name="Main", base_url=URL)

        with (
            patch(
                "sourcehealth.pipeline.prober.check_reachable",
                new_callable=AsyncMock,
                side_effect=RuntimeError("boom"),
            ),
            patch(
                "sourcehealth.pipeline.prober.check_search",
                new_callable=AsyncMock,
                return_value=SearchOutcome.MATCH,
            ),
        ):
            async with httpx.AsyncClient() as client:
                result = await probe_endpoint(client, endpoint, _options())

        assert result.reachable is False
        assert result.search_outcome == SearchOutcome.MATCH
