"""Tests for the single-flight shelf visualizer."""

import asyncio
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from globallib.config import GeminiConfig
from globallib.errors import VisualizerFailure
from globallib.models import ShelfImage
from globallib.shelf import ShelfVisualizer, build_shelf_prompt, first_inline_image

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def image_response(*parts):
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))]
    )


def inline_part(data=PNG_BYTES, mime_type="image/png"):
    return SimpleNamespace(
        text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type)
    )


def text_part(text="Here is your shelf."):
    return SimpleNamespace(text=text, inline_data=None)


def make_genai_client(response=None, side_effect=None):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=response, side_effect=side_effect
    )
    return client


@pytest.fixture
def config():
    return GeminiConfig(api_key="k", image_model="image-test")


class TestFirstInlineImage:
    def test_skips_text_parts(self):
        image = first_inline_image(image_response(text_part(), inline_part()))
        assert image == ShelfImage(data=PNG_BYTES, mime_type="image/png")

    def test_first_usable_wins(self):
        image = first_inline_image(
            image_response(inline_part(b"first", "image/jpeg"), inline_part(b"second"))
        )
        assert image.data == b"first"
        assert image.mime_type == "image/jpeg"

    def test_defaults_mime_type(self):
        image = first_inline_image(image_response(inline_part(mime_type=None)))
        assert image.mime_type == "image/png"

    def test_accepts_base64_text(self):
        encoded = base64.b64encode(PNG_BYTES).decode("ascii")
        image = first_inline_image(image_response(inline_part(encoded)))
        assert image.data == PNG_BYTES

    def test_skips_undecodable_base64(self):
        image = first_inline_image(
            image_response(inline_part("not base64!!"), inline_part(b"ok"))
        )
        assert image.data == b"ok"

    def test_no_image(self):
        assert first_inline_image(image_response(text_part())) is None
        assert first_inline_image(SimpleNamespace(candidates=[])) is None


class TestShelfImage:
    def test_data_uri(self):
        image = ShelfImage(data=b"abc", mime_type="image/jpeg")
        assert image.data_uri == "data:image/jpeg;base64,YWJj"


class TestShelfVisualizer:
    """Test generate preconditions, memoization and the single-flight flag."""

    def test_prompt_names_library_and_call_number(self):
        prompt = build_shelf_prompt("NYPL", "PS3558.E63")
        assert "inside NYPL" in prompt
        assert 'call number "PS3558.E63"' in prompt
        assert "photorealistic" in prompt

    @pytest.mark.asyncio
    async def test_generate_memoizes(self, config):
        client = make_genai_client(image_response(inline_part()))
        visualizer = ShelfVisualizer(config, client=client)
        memo: dict[int, ShelfImage] = {}

        image = await visualizer.generate("NYPL", "PS3558", 0, memo)

        assert image.data == PNG_BYTES
        assert memo[0] is image
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "image-test"
        assert "NYPL" in kwargs["contents"].parts[0].text

    @pytest.mark.asyncio
    async def test_memoized_index_is_not_regenerated(self, config):
        client = make_genai_client(image_response(inline_part()))
        visualizer = ShelfVisualizer(config, client=client)
        memo: dict[int, ShelfImage] = {}

        first = await visualizer.generate("NYPL", "PS3558", 0, memo)
        second = await visualizer.generate("NYPL", "PS3558", 0, memo)

        assert second is first
        assert client.aio.models.generate_content.call_count == 1

    @pytest.mark.asyncio
    async def test_second_call_while_pending_is_a_noop(self, config):
        gate = asyncio.Event()

        async def slow(**kwargs):
            await gate.wait()
            return image_response(inline_part())

        client = make_genai_client(side_effect=slow)
        visualizer = ShelfVisualizer(config, client=client)
        memo: dict[int, ShelfImage] = {}

        first = asyncio.create_task(visualizer.generate("NYPL", "A", 0, memo))
        while visualizer.pending_index is None:
            await asyncio.sleep(0)

        # A different index is turned away too: the guard is global
        second = await visualizer.generate("BL", "B", 1, memo)

        assert second is None
        assert client.aio.models.generate_content.call_count == 1
        assert visualizer.pending_index == 0

        gate.set()
        await first
        assert visualizer.in_flight is False
        assert set(memo) == {0}

    @pytest.mark.asyncio
    async def test_failure_clears_flag_and_allows_retry(self, config):
        client = make_genai_client(side_effect=RuntimeError("429 RESOURCE_EXHAUSTED"))
        visualizer = ShelfVisualizer(config, client=client)
        memo: dict[int, ShelfImage] = {}

        with pytest.raises(VisualizerFailure):
            await visualizer.generate("NYPL", "A", 0, memo)

        assert visualizer.in_flight is False
        assert memo == {}

        client.aio.models.generate_content.side_effect = None
        client.aio.models.generate_content.return_value = image_response(inline_part())
        image = await visualizer.generate("NYPL", "A", 0, memo)

        assert image is not None
        assert client.aio.models.generate_content.call_count == 2

    @pytest.mark.asyncio
    async def test_response_without_image_is_a_failure(self, config):
        client = make_genai_client(image_response(text_part()))
        visualizer = ShelfVisualizer(config, client=client)
        memo: dict[int, ShelfImage] = {}

        with pytest.raises(VisualizerFailure):
            await visualizer.generate("NYPL", "A", 0, memo)

        assert visualizer.in_flight is False
        assert memo == {}

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(self):
        async def never_returns(**kwargs):
            await asyncio.sleep(10)

        client = make_genai_client(side_effect=never_returns)
        visualizer = ShelfVisualizer(
            GeminiConfig(api_key="k", timeout_seconds=0.01), client=client
        )

        with pytest.raises(VisualizerFailure):
            await visualizer.generate("NYPL", "A", 0, {})

        assert visualizer.in_flight is False
