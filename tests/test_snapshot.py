"""Tests for listing sources and the snapshot fetcher."""

import json

import pytest
import requests

from deal_finder.config import Settings
from deal_finder.errors import IncompleteSnapshot
from deal_finder.listings import (
    HttpListingSource,
    JsonFileSource,
    SnapshotFetcher,
    StaticListingSource,
    build_source,
)
from deal_finder.validation import PropertyKind
from tests.conftest import make_record


def _fetcher(source, **kwargs):
    kwargs.setdefault("retry_attempts", 3)
    return SnapshotFetcher(source, backoff_min=0, backoff_max=0, **kwargs)


class TestSnapshotFetcher:
    """Tests for pagination, retries and validation."""

    def test_paginates_until_short_page(self, mocker):
        records = [make_record(f"L{i}") for i in range(5)]
        source = StaticListingSource({("east-village", "rental"): records})
        spy = mocker.spy(source, "fetch_page")

        snapshot = _fetcher(source, page_size=2).fetch("east-village", PropertyKind.RENTAL)

        assert snapshot.active_count == 5
        assert snapshot.pages == 3
        assert snapshot.complete
        assert [call.args[-2] for call in spy.call_args_list] == [0, 2, 4]

    def test_exact_multiple_needs_one_empty_page(self):
        records = [make_record(f"L{i}") for i in range(4)]
        source = StaticListingSource({("east-village", "rental"): records})

        snapshot = _fetcher(source, page_size=2).fetch("east-village", "rental")

        assert snapshot.active_count == 4
        assert snapshot.pages == 3

    def test_max_listings_caps_snapshot(self):
        records = [make_record(f"L{i}") for i in range(10)]
        source = StaticListingSource({("east-village", "rental"): records})

        snapshot = _fetcher(source, page_size=3, max_listings=5).fetch("east-village", "rental")

        assert snapshot.records_fetched == 5
        assert not snapshot.complete

    def test_transient_page_failure_retried(self, mocker):
        source = mocker.Mock()
        source.name = "flaky"
        source.fetch_page.side_effect = [requests.ConnectionError("reset"), [make_record("A")]]

        snapshot = _fetcher(source).fetch("east-village", "rental")

        assert snapshot.active_count == 1
        assert source.fetch_page.call_count == 2

    def test_failed_page_makes_snapshot_incomplete(self, mocker):
        source = mocker.Mock()
        source.name = "flaky"
        source.fetch_page.side_effect = [
            [make_record(f"L{i}") for i in range(2)],
            requests.HTTPError("503"),
            requests.HTTPError("503"),
            requests.HTTPError("503"),
        ]

        with pytest.raises(IncompleteSnapshot):
            _fetcher(source, page_size=2).fetch("east-village", "rental")

    def test_invalid_records_counted(self):
        records = [make_record("A"), make_record("B", price=None), make_record("C", bathrooms=1.25)]
        source = StaticListingSource({("east-village", "rental"): records})

        snapshot = _fetcher(source).fetch("east-village", "rental")

        assert [l.listing_id for l in snapshot.listings] == ["A"]
        assert snapshot.records_fetched == 3
        assert snapshot.validation_errors == 2
        assert snapshot.unparsed_ids == {"B", "C"}

    def test_unknown_neighborhood_is_empty(self):
        snapshot = _fetcher(StaticListingSource({})).fetch("chinatown", "sale")

        assert snapshot.active_count == 0
        assert snapshot.property_kind == PropertyKind.SALE


class TestJsonFileSource:
    def test_nested_layout(self, tmp_path):
        path = tmp_path / "listings.json"
        path.write_text(json.dumps({
            "east-village": {"rental": [make_record("A")], "sale": [make_record("S", price=900000)]},
        }))
        source = JsonFileSource(path)

        assert len(source.fetch_page("east-village", PropertyKind.SALE, 0, 10)) == 1
        assert source.fetch_page("chinatown", PropertyKind.RENTAL, 0, 10) == []

    def test_flat_list_served_for_any_neighborhood(self, tmp_path):
        path = tmp_path / "listings.json"
        path.write_text(json.dumps([make_record("A"), make_record("B")]))
        source = JsonFileSource(path)

        assert len(source.fetch_page("chinatown", PropertyKind.RENTAL, 0, 10)) == 2
        assert source.fetch_page("chinatown", PropertyKind.SALE, 0, 10) == []


class TestHttpListingSource:
    """Tests for the search-API source with a mocked requests session."""

    @pytest.fixture
    def session(self, mocker):
        session = mocker.Mock()
        session.headers = {}
        return session

    def test_fetch_page(self, session):
        session.get.return_value.json.return_value = {"results": [make_record("A")]}
        source = HttpListingSource("https://listings.example.com/", api_key="k", session=session)

        page = source.fetch_page("east-village", PropertyKind.RENTAL, 500, 500)

        assert page[0]["id"] == "A"
        session.get.assert_called_once_with(
            "https://listings.example.com/rentals/search",
            params={"areas": "east-village", "limit": 500, "offset": 500},
            timeout=30.0,
        )
        assert session.headers["X-RapidAPI-Key"] == "k"
        assert session.headers["X-RapidAPI-Host"] == "listings.example.com"

    def test_sales_path_and_bare_list(self, session):
        session.get.return_value.json.return_value = [make_record("S")]
        source = HttpListingSource("https://listings.example.com", session=session)

        assert len(source.fetch_page("chinatown", PropertyKind.SALE, 0, 10)) == 1
        assert session.get.call_args.args[0].endswith("/sales/search")

    def test_http_error_propagates(self, session):
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        source = HttpListingSource("https://listings.example.com", session=session)

        with pytest.raises(requests.HTTPError):
            source.fetch_page("east-village", PropertyKind.RENTAL, 0, 10)

    def test_unexpected_shape(self, session):
        session.get.return_value.json.return_value = {"error": "quota"}
        source = HttpListingSource("https://listings.example.com", session=session)

        with pytest.raises(ValueError):
            source.fetch_page("east-village", PropertyKind.RENTAL, 0, 10)


class TestBuildSource:
    def test_input_path(self, tmp_path):
        path = tmp_path / "listings.json"
        path.write_text("[]")

        assert isinstance(build_source(Settings(), input_path=str(path)), JsonFileSource)

    def test_api_url(self):
        source = build_source(Settings(listing_api_url="https://listings.example.com"))
        assert isinstance(source, HttpListingSource)

    def test_nothing_configured(self):
        with pytest.raises(ValueError):
            build_source(Settings(listing_api_url=None))
