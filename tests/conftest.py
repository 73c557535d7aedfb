# conftest.py
# Puts the repository root on sys.path so the flat top-level modules
# (set_parser, scraper_engine, ...) import the same way they do at runtime,
# and provides page builders shaped like BrickEconomy set pages.

import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from scraper_engine import RequestThrottle  # noqa: E402
from site_profiles import BRICK_ECONOMY  # noqa: E402

# A label row whose value cell is missing
MISSING_CELL = object()


def detail_row(label, value):
    if value is MISSING_CELL:
        return f'<div class="row"><div class="col-xs-5">{label}</div></div>'
    return (
        f'<div class="row"><div class="col-xs-5">{label}</div>'
        f'<div class="col-xs-7">{value}</div></div>'
    )


def price_row(label, value, nested=False):
    if nested:
        label = f'<span class="helppopover">{label}</span>'
    return (
        f'<div class="row"><div class="col-xs-5">{label}</div>'
        f'<div class="col-xs-7"><b>{value}</b></div></div>'
    )


def build_set_page(set_number="75192-1", name="Millennium Falcon", year="2017",
                   pieces="7,541", listed_price="$849.99", retail_price="$799.99",
                   values=("$1,021.45",), extra_details=()):
    """A set page. Passing None for a field leaves its label out entirely."""
    details = []
    for label, value in (("Set number", set_number), ("Name", name),
                         ("Year", year), ("Pieces", pieces)):
        if value is not None:
            details.append(detail_row(label, value))
    details.extend(detail_row(label, value) for label, value in extra_details)

    prices = []
    if retail_price is not None:
        prices.append(price_row("Retail price", retail_price))
    for value in values:
        prices.append(price_row("Value", value, nested=True))

    listed = ""
    if listed_price is not None:
        listed = (
            '<table id="sales_region_table"><tr><td><div>'
            f'<span class="a">{listed_price}</span>'
            '</div></td></tr></table>'
        )

    return (
        "<html><body>"
        f'<div id="SetDetails">{"".join(details)}</div>'
        f'<div id="ContentPlaceHolder1_PanelSetPricing">{"".join(prices)}</div>'
        f"{listed}"
        "</body></html>"
    )


def build_year_page(names):
    items = "".join(f'<h4><a href="/set/{i}-1/">{name}</a></h4>' for i, name in enumerate(names))
    return f"<html><body>{items}</body></html>"


class FakeClock:
    """Monotonic clock that only moves when told to, or when slept on."""

    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSite:
    """Serves canned pages through httpx.MockTransport and records requests."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.requested = []

    def set_page(self, set_number, html, status=200):
        self.pages[BRICK_ECONOMY.set_url(set_number)] = (status, html)

    def year_page(self, year, html, status=200):
        self.pages[BRICK_ECONOMY.year_url(year)] = (status, html)

    def handler(self, request):
        url = str(request.url)
        self.requested.append(url)
        status, html = self.pages.get(url, (404, "<html>Not found</html>"))
        return httpx.Response(status, text=html)

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def throttle(fake_clock):
    return RequestThrottle(0.5, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.fixture
def fake_site():
    return FakeSite()
