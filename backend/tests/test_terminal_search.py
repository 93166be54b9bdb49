# Overview: Pytest coverage for the register's debounced product search box.

import pytest

from oropos.terminal.errors import TransientNetworkError
from oropos.terminal.search import ProductSearch

from terminal_fakes import FakeScheduler


class FakeSearchClient:
    def __init__(self):
        self.queries = []
        self.results = {}
        self.error = None

    def search_products(self, query, limit=10):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results.get(query, [])


class SlowSearchClient(FakeSearchClient):
    """Lets the test interleave keystrokes with an in-flight request."""

    def __init__(self, on_call):
        super().__init__()
        self.on_call = on_call

    def search_products(self, query, limit=10):
        self.on_call(query)
        return super().search_products(query, limit)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def api():
    client = FakeSearchClient()
    client.results = {
        "sham": [{"id": 1, "name": "Shampoo"}, {"id": 2, "name": "Shampoo XL"}, {"id": 3, "name": "Argan Shampoo"}],
        "cond": [{"id": 9, "name": "Conditioner"}],
    }
    return client


@pytest.fixture
def search(api, scheduler):
    return ProductSearch(api, scheduler=scheduler, debounce=0.15)


class TestDebounce:
    def test_short_input_makes_no_call(self, search, api, scheduler):
        search.set_query("s")
        scheduler.advance(1)
        assert api.queries == []
        assert search.results == []

    def test_one_call_per_settled_query(self, search, api, scheduler):
        for text in ("sh", "sha", "sham"):
            search.set_query(text)
            scheduler.advance(0.05)
        scheduler.advance(0.15)

        assert api.queries == ["sham"]
        assert len(search.results) == 3

    def test_waits_for_debounce(self, search, api, scheduler):
        search.set_query("sham")
        scheduler.advance(0.1)
        assert api.queries == []
        scheduler.advance(0.05)
        assert api.queries == ["sham"]

    def test_shortening_below_minimum_clears(self, search, api, scheduler):
        search.set_query("sham")
        scheduler.advance(0.2)
        search.set_query("s")
        assert search.results == []

    def test_stale_response_dropped(self, scheduler):
        holder = {}

        def on_call(query):
            # user keeps typing while the "sham" request is in flight
            if query == "sham":
                holder["search"].set_query("cond")

        api = SlowSearchClient(on_call)
        api.results = {"sham": [{"id": 1}], "cond": [{"id": 9}]}
        search = ProductSearch(api, scheduler=scheduler, debounce=0.15)
        holder["search"] = search

        search.set_query("sham")
        scheduler.advance(0.15)
        assert search.results == []

        scheduler.advance(0.15)
        assert search.results == [{"id": 9}]

    def test_error_leaves_empty_results(self, search, api, scheduler):
        api.error = TransientNetworkError("down")
        search.set_query("sham")
        scheduler.advance(0.2)
        assert search.results == []
        assert search.error


class TestKeyboard:
    def _loaded(self, search, scheduler):
        search.set_query("sham")
        scheduler.advance(0.2)

    def test_cursor_clamped(self, search, scheduler):
        self._loaded(search, scheduler)
        search.handle_key("ArrowUp")
        assert search.cursor == 0
        for _ in range(5):
            search.handle_key("ArrowDown")
        assert search.cursor == 2

    def test_enter_selects_highlighted(self, api, scheduler):
        picked = []
        search = ProductSearch(api, scheduler=scheduler, debounce=0.15, on_select=picked.append)
        self._loaded(search, scheduler)
        search.handle_key("ArrowDown")

        item = search.handle_key("Enter")
        assert item == {"id": 2, "name": "Shampoo XL"}
        assert picked == [item]
        assert search.results == []
        assert search.query == ""

    def test_enter_with_no_results(self, search):
        assert search.handle_key("Enter") is None

    def test_escape_cancels_pending_search(self, search, api, scheduler):
        search.set_query("sham")
        search.handle_key("Escape")
        scheduler.advance(1)
        assert api.queries == []
        assert search.results == []
