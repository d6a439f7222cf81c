"""Fire-and-forget wp-cron trigger.

Each call POSTs to `{site}/wp-cron.php?doing_wp_cron=<ts>` and returns as soon
as the request is on the wire. The response body is never read: a read
timeout means the site accepted the request and is working, which is the
whole point. Only connection-level failures are reported.
"""

import logging
import time
from typing import Optional, Tuple
import requests
from requests.exceptions import ReadTimeout, RequestException

from all_sites_cron.coordination.errors import SiteTriggerError

logger = logging.getLogger(__name__)


def doing_wp_cron_value(now: Optional[float] = None) -> str:
    """Timestamp wp-cron.php expects in its doing_wp_cron query argument."""
    return "%.22f" % (time.time() if now is None else now)


class CronTrigger:
    """Wakes the scheduler of one site at a time."""

    def __init__(
        self,
        request_timeout: float = 0.01,
        connect_timeout: float = 0.05,
        ssl_verify: bool = False,
        home_url: str = "",
        session: Optional[requests.Session] = None,
    ):
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout
        self.ssl_verify = ssl_verify
        self.user_agent = f"All Sites Cron; {home_url or '/'}"
        self.session = session or requests.Session()

    @property
    def timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout, self.request_timeout)

    def fire(self, site_url: str, doing_wp_cron: str) -> None:
        """Trigger wp-cron on one site.

        Raises:
            SiteTriggerError: the request could not be delivered
        """
        cron_url = f"{site_url.rstrip('/')}/wp-cron.php"
        try:
            response = self.session.post(
                cron_url,
                params={"doing_wp_cron": doing_wp_cron},
                timeout=self.timeout,
                verify=self.ssl_verify,
                headers={"User-Agent": self.user_agent},
                stream=True,
            )
            response.close()
        except ReadTimeout:
            # Delivered; the site is still running its events
            return
        except RequestException as e:
            logger.debug(f"wp-cron trigger failed for {site_url}: {e}")
            raise SiteTriggerError(site_url, str(e)) from e

    def close(self):
        self.session.close()
