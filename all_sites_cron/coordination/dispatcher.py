"""Batched fan-out of wp-cron triggers across the network."""

import logging
from typing import List, Optional

from all_sites_cron.coordination.errors import SiteTriggerError
from all_sites_cron.integrations.cron_trigger import CronTrigger, doing_wp_cron_value
from all_sites_cron.integrations.site_catalog import SiteLister
from all_sites_cron.models.dtos import DispatchResult

logger = logging.getLogger(__name__)

NO_SITES_MESSAGE = "No public sites found in the network"
MAX_ERRORS_IN_MESSAGE = 3


def summarize_errors(errors: List[str]) -> str:
    """First few error strings, with an ellipsis when some were left out."""
    message = "; ".join(errors[:MAX_ERRORS_IN_MESSAGE])
    if len(errors) > MAX_ERRORS_IN_MESSAGE:
        message += " ..."
    return message


class SiteDispatcher:
    """Pages through the site catalog and fires one trigger per site."""

    def __init__(
        self,
        site_lister: SiteLister,
        trigger: CronTrigger,
        batch_size: int = 50,
        max_sites: int = 1000,
    ):
        self.site_lister = site_lister
        self.trigger = trigger
        self.batch_size = batch_size
        self.max_sites = max_sites

    def run(self, batch_size: Optional[int] = None, max_sites: Optional[int] = None) -> DispatchResult:
        """Fire wp-cron on every public site, up to max_sites.

        A failed trigger is recorded and the batch carries on. Any recorded
        failure makes the overall result unsuccessful, while `count` still
        reports every site that was attempted.
        """
        batch_size = max(1, int(batch_size or self.batch_size))
        max_sites = max(0, int(self.max_sites if max_sites is None else max_sites))

        doing_wp_cron = doing_wp_cron_value()
        errors: List[str] = []
        count = 0
        offset = 0
        pages = 0

        while count < max_sites:
            limit = min(batch_size, max_sites - count)
            sites = self.site_lister.list_sites(offset=offset, limit=limit)
            pages += 1

            for site in sites:
                try:
                    self.trigger.fire(site.url, doing_wp_cron)
                except SiteTriggerError as e:
                    errors.append(str(e))
                count += 1

            offset += len(sites)
            if len(sites) < limit:
                break

        logger.info(f"Dispatched wp-cron to {count} sites in {pages} pages ({len(errors)} errors)")

        if count == 0:
            return DispatchResult.failure(NO_SITES_MESSAGE)

        if errors:
            return DispatchResult.failure(summarize_errors(errors), count=count, errors=errors)

        return DispatchResult(success=True, count=count, message="")
