"""
Scraper Engine - Throttled fetching and the scrape run
=======================================================
Drives one run over a range of set numbers against a single catalog site.

Components:
- RequestThrottle: minimum gap between requests, one shared clock
- ThrottledFetcher: httpx GET behind the throttle; anything but 200 is fatal
- SiteProfile: URLs, selectors and file names for a site
- ScrapeManager: resolves set numbers, scrapes them in order, then writes
  the ranked table or updates the set list

Rows are only ever written at the end of a run. A fatal error leaves the
output file and the set list untouched.
"""

import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, List, Optional
from urllib.parse import urljoin

import httpx

from csv_store import save_to_csv
from errors import EmptyReferenceListError, FetchError, LegetError
from metrics import OUTPUT_FIELDNAMES, consolidate, project_reference_entries
from query import Query
from set_data import ColumnAlignedDataset, accumulate
from set_list_cache import SetListCache
from set_parser import BrickEconomyExtractor, PageExtractor

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_REQUEST_DELAY = 0.5
DEFAULT_TIMEOUT = 30
USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36'


# =============================================================================
# REQUEST THROTTLE
# =============================================================================

class RequestThrottle:
    """Keeps at least `delay` seconds between the start of any two requests."""

    def __init__(self, delay: float = DEFAULT_REQUEST_DELAY,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.delay = delay
        self.clock = clock
        self.sleep = sleep
        self.last_dispatch: Optional[float] = None
        self.lock = Lock()

    def wait(self):
        """Block until the next request may go out, then claim the slot."""
        with self.lock:
            now = self.clock()
            if self.last_dispatch is not None:
                remaining = self.delay - (now - self.last_dispatch)
                if remaining > 0:
                    self.sleep(remaining)
                    now = self.clock()
            self.last_dispatch = now


# =============================================================================
# FETCHER
# =============================================================================

class ThrottledFetcher:
    """GETs pages one at a time through a shared throttle."""

    def __init__(self, client: httpx.Client, throttle: RequestThrottle):
        self.client = client
        self.throttle = throttle

    def fetch(self, url: str) -> str:
        """Return the page body. Raises FetchError on anything but 200 OK."""
        self.throttle.wait()
        try:
            resp = self.client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(url, None, {"error": str(e)}) from e

        if resp.status_code != httpx.codes.OK:
            raise FetchError(url, resp.status_code)
        return resp.text


# =============================================================================
# SITE PROFILE
# =============================================================================

@dataclass
class SiteProfile:
    """Configuration for a single catalog site."""

    name: str
    key: str
    base_url: str
    set_url_template: str
    year_url_template: str
    output_file: str
    set_list_file: str

    request_delay: float = DEFAULT_REQUEST_DELAY
    selectors: Dict[str, str] = field(default_factory=dict)

    def set_url(self, set_number: str) -> str:
        return urljoin(self.base_url, self.set_url_template.format(set_number=set_number))

    def year_url(self, year: int) -> str:
        return urljoin(self.base_url, self.year_url_template.format(year=year))


@dataclass
class RunSummary:
    pages_fetched: int = 0
    records: int = 0
    rows_written: int = 0
    year_listings: Dict[int, List[str]] = field(default_factory=dict)
    output_file: Optional[str] = None


# =============================================================================
# SCRAPE MANAGER
# =============================================================================

class ScrapeManager:
    """Owns one scrape run: its client, throttle, extractor and set list."""

    def __init__(self, site_profile: SiteProfile, query: Query,
                 output_file: Optional[str] = None,
                 set_list_file: Optional[str] = None,
                 client: Optional[httpx.Client] = None,
                 throttle: Optional[RequestThrottle] = None,
                 extractor: Optional[PageExtractor] = None):
        self.site = site_profile
        self.query = query
        self.output_file = output_file or site_profile.output_file
        self.set_list = SetListCache(set_list_file or site_profile.set_list_file)

        self.client = client or self._create_client()
        self.throttle = throttle or RequestThrottle(site_profile.request_delay)
        self.fetcher = ThrottledFetcher(self.client, self.throttle)
        self.extractor = extractor or BrickEconomyExtractor(site_profile.selectors)

        self.summary = RunSummary()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.client.close()

    def _create_client(self) -> httpx.Client:
        """Create an httpx client with HTTP/2 support."""
        return httpx.Client(
            http2=True,
            headers={'User-Agent': USER_AGENT},
            follow_redirects=True,
            timeout=DEFAULT_TIMEOUT
        )

    def resolve_set_numbers(self) -> List[str]:
        """The set numbers this run will fetch, after the set list filter."""
        requested = self.query.requested_identifiers()
        if not requested or self.query.skip_reference_filter:
            return requested

        entries = self.set_list.load()
        if not entries:
            raise EmptyReferenceListError(
                f"{self.set_list.path} is empty or missing. "
                "Run an update pass first with --update-set-list LOW HIGH, "
                "or pass --skip-set-list to scrape the whole range.",
            )
        return self.set_list.filter(requested, self.query, entries)

    def scrape_sets(self, set_numbers: List[str]) -> ColumnAlignedDataset:
        """Fetch and fold every set page into one column-aligned dataset."""
        dataset = ColumnAlignedDataset()
        total = len(set_numbers)

        for i, set_number in enumerate(set_numbers, 1):
            url = self.site.set_url(set_number)
            logger.info(f"[{i}/{total}] Scraping: {url}")
            try:
                html = self.fetcher.fetch(url)
                self.summary.pages_fetched += 1
                record = self.extractor.extract(html)
                dataset = accumulate(dataset, record)
            except LegetError as e:
                e.context.setdefault("set_number", set_number)
                e.context.setdefault("last_recorded", dataset.last_set_number)
                raise

            if record.set_number:
                logger.info(f"  ✓ {record.set_number}: {record.name}")
            else:
                logger.info("  ✗ No set on this page")

        self.summary.records = len(dataset)
        return dataset

    def list_year_sets(self) -> Dict[int, List[str]]:
        """Names of the sets listed on each requested year page."""
        listings = {}
        for year in self.query.years or []:
            url = self.site.year_url(year)
            logger.info(f"Listing sets for {year}: {url}")
            html = self.fetcher.fetch(url)
            self.summary.pages_fetched += 1
            names = self.extractor.extract_year_listing(html)
            for name in names:
                logger.info(f"  {name}")
            listings[year] = names
        return listings

    def run(self) -> RunSummary:
        """Execute the run and write its results."""
        logger.info("=" * 70)
        logger.info(f"Starting leget for {self.site.name}")
        logger.info("=" * 70)

        if self.query.years:
            logger.info(f"Years: {self.query.years}")

        if self.query.set_number_range is not None:
            set_numbers = self.resolve_set_numbers()
            logger.info(f"\nTotal sets to scrape: {len(set_numbers)}")
            dataset = self.scrape_sets(set_numbers)

            if self.query.update_mode:
                entries = project_reference_entries(dataset)
                self.set_list.merge(entries)
                self.summary.rows_written = len(entries)
                self.summary.output_file = self.set_list.path
            else:
                table = consolidate(dataset, self.query)
                save_to_csv(table, self.output_file, OUTPUT_FIELDNAMES)
                self.summary.rows_written = len(table)
                self.summary.output_file = self.output_file
        elif self.query.years:
            self.summary.year_listings = self.list_year_sets()

        self._print_summary()
        return self.summary

    def _print_summary(self):
        """Print scraping summary."""
        logger.info("\n" + "=" * 70)
        logger.info("SCRAPING COMPLETE")
        logger.info(f"Pages fetched: {self.summary.pages_fetched}")
        logger.info(f"Sets recorded: {self.summary.records}")
        logger.info(f"Rows written: {self.summary.rows_written}")
        logger.info(f"Output file: {self.summary.output_file or 'None'}")
        logger.info("=" * 70)
