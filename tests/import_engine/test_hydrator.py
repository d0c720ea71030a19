from unittest.mock import Mock

import pytest
import requests

from import_engine.hydrator import MetadataHydrator, HYDRATED, FALLBACK_SEEDED
from services.catalog_client import CatalogError


def test_fresh_fetch_success():
    fetch, seed = Mock(return_value={"key": "hc:1"}), Mock()

    outcome = MetadataHydrator(fetch, seed).hydrate("hc:1", "Dune", "Frank Herbert")

    assert outcome == HYDRATED
    fetch.assert_called_once_with("hc:1", force_remote_fetch=True)
    seed.assert_not_called()


@pytest.mark.parametrize("error", [
    CatalogError("HTTP 503", status=503),
    requests.Timeout("read timed out"),
    KeyError("books"),
])
def test_any_fetch_failure_seeds_fallback(error):
    fetch, seed = Mock(side_effect=error), Mock()

    outcome = MetadataHydrator(fetch, seed).hydrate("hc:1", "Dune", "Frank Herbert")

    assert outcome == FALLBACK_SEEDED
    seed.assert_called_once_with([{
        "key": "hc:1",
        "title": "Dune",
        "authors": ["Frank Herbert"],
        "publish_date": None,
        "cover_urls": [],
    }])


def test_for_catalog_uses_catalog_methods():
    catalog = Mock()
    catalog.get_book_detail.side_effect = CatalogError("boom")

    assert MetadataHydrator.for_catalog(catalog).hydrate("hc:9", "T", "A") == FALLBACK_SEEDED
    catalog.seed_book_metadata_entries.assert_called_once()
