"""Tests for the batched site fan-out."""

from unittest.mock import MagicMock

import pytest

from all_sites_cron.coordination.dispatcher import (
    NO_SITES_MESSAGE,
    SiteDispatcher,
    summarize_errors,
)
from all_sites_cron.coordination.errors import SiteTriggerError
from conftest import PagedSiteLister


def failing_for(*urls):
    """Side effect raising SiteTriggerError for the given site URLs."""
    def fire(url, doing_wp_cron):
        if url in urls:
            raise SiteTriggerError(url, "Connection refused")
    return fire


class TestPaging:
    """Test catalog paging."""

    def test_120_sites_in_three_pages(self, trigger):
        lister = PagedSiteLister(120)
        dispatcher = SiteDispatcher(lister, trigger, batch_size=50, max_sites=1000)

        result = dispatcher.run()

        assert result.success is True
        assert result.count == 120
        assert trigger.fire.call_count == 120
        assert lister.requests == [(0, 50), (50, 50), (100, 50)]

    def test_exact_multiple_stops_on_empty_page(self, trigger):
        lister = PagedSiteLister(100)

        result = SiteDispatcher(lister, trigger, batch_size=50, max_sites=1000).run()

        assert result.count == 100
        assert lister.requests == [(0, 50), (50, 50), (100, 50)]

    def test_max_sites_caps_the_run(self, trigger):
        lister = PagedSiteLister(120)

        result = SiteDispatcher(lister, trigger, batch_size=50, max_sites=70).run()

        assert result.success is True
        assert result.count == 70
        assert trigger.fire.call_count == 70
        assert lister.requests == [(0, 50), (50, 20)]

    def test_run_overrides_batch_size(self, trigger):
        lister = PagedSiteLister(5)

        result = SiteDispatcher(lister, trigger, batch_size=50).run(batch_size=2)

        assert result.count == 5
        assert lister.requests == [(0, 2), (2, 2), (4, 2)]

    def test_all_triggers_share_one_doing_wp_cron_value(self, trigger):
        SiteDispatcher(PagedSiteLister(3), trigger).run()

        values = {call.args[1] for call in trigger.fire.call_args_list}
        assert len(values) == 1

    def test_sites_fired_in_catalog_order(self, trigger):
        SiteDispatcher(PagedSiteLister(3), trigger).run()

        urls = [call.args[0] for call in trigger.fire.call_args_list]
        assert urls == [
            "https://site0.example.com",
            "https://site1.example.com",
            "https://site2.example.com",
        ]


class TestResults:
    """Test result aggregation."""

    def test_empty_catalog(self, trigger):
        result = SiteDispatcher(PagedSiteLister(0), trigger).run()

        assert result.success is False
        assert result.count == 0
        assert result.message == NO_SITES_MESSAGE
        trigger.fire.assert_not_called()

    def test_partial_failure(self):
        lister = PagedSiteLister(5)
        trigger = MagicMock()
        trigger.fire.side_effect = failing_for("https://site1.example.com", "https://site3.example.com")

        result = SiteDispatcher(lister, trigger).run()

        assert result.success is False
        assert result.count == 5
        assert len(result.errors) == 2
        assert "Error for https://site1.example.com: Connection refused" in result.message
        assert "Error for https://site3.example.com: Connection refused" in result.message
        assert "..." not in result.message

    def test_failure_does_not_stop_batch(self):
        trigger = MagicMock()
        trigger.fire.side_effect = failing_for("https://site0.example.com")

        result = SiteDispatcher(PagedSiteLister(3), trigger).run()

        assert trigger.fire.call_count == 3
        assert result.count == 3

    def test_message_truncated_after_three_errors(self):
        trigger = MagicMock()
        lister = PagedSiteLister(5)
        trigger.fire.side_effect = failing_for(*[site.url for site in lister.sites])

        result = SiteDispatcher(lister, trigger).run()

        assert len(result.errors) == 5
        assert result.message.count("Error for") == 3
        assert result.message.endswith(" ...")


@pytest.mark.parametrize("errors,expected", [
    (["a"], "a"),
    (["a", "b", "c"], "a; b; c"),
    (["a", "b", "c", "d"], "a; b; c ..."),
])
def test_summarize_errors(errors, expected):
    assert summarize_errors(errors) == expected
