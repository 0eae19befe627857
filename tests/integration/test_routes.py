"""Integration tests for the globallib JSON routes."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from datasette_globallib.plugin import get_controller
from globallib.errors import UpstreamUnavailable
from globallib.holdings import HoldingsInference, HoldingsResult
from globallib.models import Citation, HoldingRecord

HOLDING = HoldingRecord(
    library="New York Public Library",
    address="476 5th Ave, New York, NY 10018",
    call_number="PS3558.E63 D8",
    availability="Available",
    directions="3rd Floor, Rose Main Reading Room",
)


@pytest.fixture
def controller(datasette, dune, nineteen_eighty_four):
    """The plugin's controller with upstream calls mocked out."""
    controller = get_controller(datasette)
    controller.searcher.client.search = AsyncMock(
        return_value=[dune, nineteen_eighty_four]
    )

    inference = AsyncMock(spec=HoldingsInference)
    inference.fetch_holdings.return_value = HoldingsResult(
        holdings=[HOLDING],
        citations=[Citation(title="NYPL", uri="https://nypl.org")],
    )
    controller.inference = inference

    part = SimpleNamespace(inline_data=SimpleNamespace(data=b"img", mime_type="image/png"))
    image_client = MagicMock()
    image_client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))]
        )
    )
    controller.visualizer._client = image_client
    return controller


class TestConfiguration:
    async def test_plugin_config_applied(self, datasette, db_path):
        controller = get_controller(datasette)

        assert controller.config.cache.db_path == db_path
        assert controller.config.default_location == "Test City"
        assert controller.config.gemini.get_api_key() == "test-key"

    async def test_one_controller_per_instance(self, datasette):
        assert get_controller(datasette) is get_controller(datasette)


class TestSearchRoutes:
    async def test_initial_state(self, datasette, controller):
        response = await datasette.client.get("/-/globallib/state.json")

        assert response.status_code == 200
        assert response.json()["view"] == "idle"
        assert response.json()["location"] == "Test City"

    async def test_search(self, datasette, controller):
        response = await datasette.client.get("/-/globallib/search.json?q=Dune")

        assert response.status_code == 200
        data = response.json()
        assert data["view"] == "browsing_results"
        assert [b["title"] for b in data["books"]] == ["Dune", "Nineteen Eighty-Four"]
        assert data["books"][0]["cover_url"].endswith("-M.jpg")

    async def test_search_requires_query(self, datasette, controller):
        response = await datasette.client.get("/-/globallib/search.json?q=++")

        assert response.status_code == 400
        assert response.json()["ok"] is False
        controller.searcher.client.search.assert_not_awaited()

    async def test_search_is_cached_in_database(self, datasette, controller, db_path):
        await datasette.client.get("/-/globallib/search.json?q=Dune")
        await datasette.client.get("/-/globallib/search.json?q=DUNE")

        assert controller.searcher.client.search.await_count == 1

        # The cache table is browsable through Datasette itself
        response = await datasette.client.get(
            f"/{db_path.stem}/kv_store.json?_shape=array"
        )
        rows = response.json()
        assert rows[0]["key"] == "globallib_cache"
        assert "dune" in json.loads(rows[0]["value"])

    async def test_search_upstream_failure(self, datasette, controller):
        controller.searcher.client.search.side_effect = UpstreamUnavailable("503")

        response = await datasette.client.get("/-/globallib/search.json?q=Dune")

        data = response.json()
        assert data["condition"] == "UpstreamUnavailable"
        assert data["error"]


class TestDetailRoutes:
    async def test_select_and_back(self, datasette, controller):
        await datasette.client.get("/-/globallib/search.json?q=Dune")

        response = await datasette.client.get(
            "/-/globallib/select.json?key=/works/OL893415W"
        )
        data = response.json()
        assert data["view"] == "viewing_detail"
        assert data["holdings_status"] == "holdings_ready"
        assert data["holdings"][0]["library"] == "New York Public Library"
        assert data["citations"][0]["uri"] == "https://nypl.org"

        response = await datasette.client.get("/-/globallib/back.json")
        data = response.json()
        assert data["view"] == "browsing_results"
        assert len(data["books"]) == 2

    async def test_select_unknown_key(self, datasette, controller):
        response = await datasette.client.get("/-/globallib/select.json?key=/works/nope")
        assert response.status_code == 404

    async def test_shelf(self, datasette, controller):
        await datasette.client.get("/-/globallib/search.json?q=Dune")
        await datasette.client.get("/-/globallib/select.json?key=/works/OL893415W")

        response = await datasette.client.get("/-/globallib/shelf.json?index=0")

        data = response.json()
        assert data["holdings"][0]["shelf_image"] == "data:image/png;base64,aW1n"

    async def test_shelf_bad_index(self, datasette, controller):
        await datasette.client.get("/-/globallib/search.json?q=Dune")
        await datasette.client.get("/-/globallib/select.json?key=/works/OL893415W")

        response = await datasette.client.get("/-/globallib/shelf.json?index=7")
        assert response.status_code == 404

        response = await datasette.client.get("/-/globallib/shelf.json?index=x")
        assert response.status_code == 400


class TestLocationRoute:
    async def test_set_and_clear_location(self, datasette, controller):
        response = await datasette.client.get(
            "/-/globallib/location.json?lat=51.5&lon=-0.12"
        )
        assert response.json()["location"] == "51.5, -0.12"

        response = await datasette.client.get("/-/globallib/location.json")
        assert response.json()["location"] == "Test City"

    async def test_invalid_location(self, datasette, controller):
        response = await datasette.client.get("/-/globallib/location.json?lat=abc&lon=1")
        assert response.status_code == 400
