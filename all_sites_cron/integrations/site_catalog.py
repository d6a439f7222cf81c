"""Site catalog: enumerates the public sites of a WordPress multisite network.

Two listers are available:
- DatabaseSiteLister reads the `{prefix}blogs` table through SQLAlchemy
- WpCliSiteLister shells out to `wp site list`
"""

import json
import logging
import re
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from all_sites_cron.models.dtos import SiteRecord

logger = logging.getLogger(__name__)

TABLE_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


class SiteLister(ABC):
    """Pages through the public sites of the network."""

    @abstractmethod
    def is_multisite(self) -> bool:
        """True if the catalog belongs to a multisite network."""

    @abstractmethod
    def list_sites(self, offset: int, limit: int) -> List[SiteRecord]:
        """Return at most `limit` public sites starting at `offset`."""


class DatabaseSiteLister(SiteLister):
    """Lists sites straight from the WordPress database."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        table_prefix: str = "wp_",
        scheme: str = "https",
        engine: Optional[Engine] = None,
    ):
        # Table names cannot be bound parameters, so the prefix is whitelisted
        if not TABLE_PREFIX_PATTERN.match(table_prefix):
            raise ValueError(f"Invalid WordPress table prefix: {table_prefix!r}")

        self.table = f"{table_prefix}blogs"
        self.scheme = scheme
        self._database_url = database_url
        self._engine = engine

    def _get_engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self._database_url, pool_pre_ping=True)
            logger.info(f"Site catalog engine initialized for table {self.table}")
        return self._engine

    def is_multisite(self) -> bool:
        try:
            return inspect(self._get_engine()).has_table(self.table)
        except SQLAlchemyError as e:
            logger.error(f"Could not inspect WordPress database: {e}")
            raise

    def _site_url(self, domain: str, path: str) -> str:
        return f"{self.scheme}://{domain}{path or '/'}".rstrip("/")

    def list_sites(self, offset: int, limit: int) -> List[SiteRecord]:
        query = text(
            f"SELECT blog_id, domain, path FROM {self.table} "
            "WHERE public = 1 AND archived = 0 AND deleted = 0 AND spam = 0 "
            "ORDER BY blog_id LIMIT :limit OFFSET :offset"
        )
        with self._get_engine().connect() as conn:
            rows = conn.execute(query, {"limit": int(limit), "offset": int(offset)}).fetchall()

        return [
            SiteRecord(url=self._site_url(domain, path), site_id=int(blog_id))
            for blog_id, domain, path in rows
        ]


class WpCliSiteLister(SiteLister):
    """Lists sites through WP-CLI.

    `wp site list` has no offset, so each page re-reads the list and slices it.
    """

    def __init__(self, wp_cli_path: str = "wp", wp_path: Optional[str] = None, timeout: int = 60):
        self.wp_cli_path = wp_cli_path
        self.wp_path = wp_path
        self.timeout = timeout

    def _command(self, *args: str) -> List[str]:
        cmd = [self.wp_cli_path, *args, "--skip-themes", "--skip-plugins"]
        if self.wp_path:
            cmd.append(f"--path={self.wp_path}")
        return cmd

    def is_multisite(self) -> bool:
        result = subprocess.run(
            self._command("core", "is-installed", "--network"),
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        return result.returncode == 0

    def list_sites(self, offset: int, limit: int) -> List[SiteRecord]:
        result = subprocess.run(
            self._command(
                "site", "list",
                "--public=1", "--archived=0", "--deleted=0", "--spam=0",
                "--fields=blog_id,url", "--format=json",
            ),
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=True,
        )
        sites = json.loads(result.stdout or "[]")
        page = sites[int(offset):int(offset) + int(limit)]
        return [
            SiteRecord(url=str(site["url"]).rstrip("/"), site_id=int(site["blog_id"]))
            for site in page
        ]
