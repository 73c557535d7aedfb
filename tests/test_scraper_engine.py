import csv
from decimal import Decimal

import httpx
import pytest

from conftest import build_set_page, build_year_page
from errors import EmptyReferenceListError, FetchError, MalformedPageError
from query import Query
from scraper_engine import RequestThrottle, ScrapeManager, ThrottledFetcher
from set_list_cache import ReferenceListEntry, SetListCache
from site_profiles import BRICK_ECONOMY


def read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def make_manager(fake_site, throttle, tmp_path, query):
    return ScrapeManager(
        BRICK_ECONOMY,
        query,
        output_file=str(tmp_path / "legot.csv"),
        set_list_file=str(tmp_path / "set_list.csv"),
        client=fake_site.client(),
        throttle=throttle,
    )


# =============================================================================
# THROTTLE
# =============================================================================

def test_first_request_never_waits(throttle, fake_clock):
    throttle.wait()

    assert fake_clock.sleeps == []


def test_waits_out_the_remaining_delay(throttle, fake_clock):
    throttle.wait()
    fake_clock.advance(0.2)
    throttle.wait()

    assert fake_clock.sleeps == [pytest.approx(0.3)]


def test_no_wait_once_delay_has_passed(throttle, fake_clock):
    throttle.wait()
    fake_clock.advance(1.0)
    throttle.wait()

    assert fake_clock.sleeps == []


def test_consecutive_dispatches_are_spaced(fake_clock):
    dispatches = []
    throttle = RequestThrottle(0.5, clock=fake_clock, sleep=fake_clock.sleep)
    for _ in range(5):
        throttle.wait()
        dispatches.append(fake_clock())
        fake_clock.advance(0.1)

    gaps = [b - a for a, b in zip(dispatches, dispatches[1:])]
    assert all(gap >= 0.5 - 1e-9 for gap in gaps)


# =============================================================================
# FETCHER
# =============================================================================

def test_fetch_returns_body(fake_site, throttle):
    fake_site.set_page("75192-1", "<html>ok</html>")
    fetcher = ThrottledFetcher(fake_site.client(), throttle)

    assert fetcher.fetch(BRICK_ECONOMY.set_url("75192-1")) == "<html>ok</html>"


def test_fetch_non_ok_status_is_fatal(fake_site, throttle):
    fake_site.set_page("75192-1", "busy", status=503)
    fetcher = ThrottledFetcher(fake_site.client(), throttle)

    with pytest.raises(FetchError) as exc_info:
        fetcher.fetch(BRICK_ECONOMY.set_url("75192-1"))

    assert exc_info.value.status_code == 503
    # never retried
    assert len(fake_site.requested) == 1


def test_fetch_transport_error_is_fatal(throttle):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(refuse))
    fetcher = ThrottledFetcher(client, throttle)

    with pytest.raises(FetchError) as exc_info:
        fetcher.fetch("https://www.brickeconomy.com/set/1-1/")

    assert exc_info.value.status_code is None


# =============================================================================
# SCRAPE MANAGER
# =============================================================================

def test_three_page_scenario(fake_site, throttle, tmp_path):
    fake_site.set_page("10001-1", build_set_page(set_number="10001-1", year=None))
    fake_site.set_page("10002-1", build_set_page(set_number="10002-1", pieces="Unknown"))
    fake_site.set_page("10003-1", build_set_page(
        set_number="10003-1", values=("New: $100.00", "Used: $80.00")))
    query = Query(set_number_range=(10001, 10003), skip_reference_filter=True)

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        dataset = manager.scrape_sets(manager.resolve_set_numbers())

    assert len(dataset) == 3
    assert dataset.column("set_number") == ("10001-1", "10002-1", "10003-1")
    assert dataset.column("year") == (None, "2017", "2017")
    assert dataset.column("pieces") == (Decimal(7541), None, Decimal(7541))
    assert dataset.column("value")[2] == Decimal(100)


def test_run_writes_ranked_table(fake_site, throttle, tmp_path):
    fake_site.set_page("1-1", build_set_page(
        set_number="1-1", name="Small", pieces="10", listed_price="$9.00", values=("$10.00",)))
    fake_site.set_page("2-1", build_set_page(
        set_number="2-1", name="Big", pieces="1,000", listed_price="$50.00", values=("$100.00",)))
    fake_site.set_page("3-1", build_set_page(
        set_number="3-1", name="Unpriced", listed_price=None))
    query = Query(set_number_range=(1, 3), skip_reference_filter=True)

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        summary = manager.run()

    rows = read_csv(tmp_path / "legot.csv")
    assert summary.records == 3
    assert summary.rows_written == 2
    assert [row["name"] for row in rows] == ["Small", "Big"]
    assert rows[0]["percent_discount_from_value"] == "-0.1"
    assert rows[0]["percent_discount_from_value_per_piece"] == "-0.01"
    assert rows[1]["year"] == "2017"
    assert rows[1]["pieces"] == "1000"


def test_run_filters_against_set_list(fake_site, throttle, tmp_path):
    SetListCache(str(tmp_path / "set_list.csv")).save([
        ReferenceListEntry("2-1", "2017", Decimal(7541)),
    ])
    fake_site.set_page("2-1", build_set_page(set_number="2-1"))
    query = Query(set_number_range=(1, 3))

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        manager.run()

    assert fake_site.requested == [BRICK_ECONOMY.set_url("2-1")]


def test_resolve_reads_set_list_once(fake_site, throttle, tmp_path, monkeypatch):
    SetListCache(str(tmp_path / "set_list.csv")).save([
        ReferenceListEntry("2-1", "2017", Decimal(7541)),
    ])
    loads = []
    original_load = SetListCache.load

    def counting_load(self):
        loads.append(self.path)
        return original_load(self)

    monkeypatch.setattr(SetListCache, "load", counting_load)
    query = Query(set_number_range=(1, 3))

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        assert manager.resolve_set_numbers() == ["2-1"]

    assert len(loads) == 1


def test_tiny_ratios_are_written_without_exponent(fake_site, throttle, tmp_path):
    fake_site.set_page("1-1", build_set_page(
        set_number="1-1", pieces="7,541", listed_price="$99.99", values=("$100.00",)))
    query = Query(set_number_range=(1, 1), skip_reference_filter=True)

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        manager.run()

    row = read_csv(tmp_path / "legot.csv")[0]
    assert "E" not in row["percent_discount_from_value_per_piece"]
    assert row["percent_discount_from_value_per_piece"].startswith("-0.0000000132608")


def test_filtered_run_with_empty_set_list_is_user_error(fake_site, throttle, tmp_path):
    query = Query(set_number_range=(1, 3))

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        with pytest.raises(EmptyReferenceListError):
            manager.run()

    assert fake_site.requested == []
    assert not (tmp_path / "legot.csv").exists()


def test_update_run_merges_into_set_list(fake_site, throttle, tmp_path):
    SetListCache(str(tmp_path / "set_list.csv")).save([
        ReferenceListEntry("2-1", "1999", Decimal(5)),
    ])
    fake_site.set_page("1-1", build_set_page(set_number="1-1", year="2001", pieces="120"))
    fake_site.set_page("2-1", build_set_page(set_number="2-1", year="2002", pieces="300"))
    fake_site.set_page("3-1", build_set_page(set_number="3-1", year="2003", pieces="1"))
    query = Query.from_options(update_set_list_range=[1, 3])

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        manager.run()

    assert read_csv(tmp_path / "set_list.csv") == [
        {"set_number": "1-1", "year": "2001", "pieces": "120"},
        {"set_number": "2-1", "year": "1999", "pieces": "5"},
    ]
    assert not (tmp_path / "legot.csv").exists()


def test_http_failure_aborts_without_output(fake_site, throttle, tmp_path):
    fake_site.set_page("1-1", build_set_page(set_number="1-1"))
    fake_site.set_page("2-1", "gone", status=404)
    fake_site.set_page("3-1", build_set_page(set_number="3-1"))
    query = Query(set_number_range=(1, 3), skip_reference_filter=True)

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        with pytest.raises(FetchError) as exc_info:
            manager.run()

    assert exc_info.value.context["set_number"] == "2-1"
    assert exc_info.value.context["last_recorded"] == "1-1"
    assert BRICK_ECONOMY.set_url("3-1") not in fake_site.requested
    assert not (tmp_path / "legot.csv").exists()


def test_malformed_year_aborts_run(fake_site, throttle, tmp_path):
    fake_site.set_page("1-1", build_set_page(set_number="1-1", year="soon"))
    query = Query(set_number_range=(1, 1), skip_reference_filter=True)

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        with pytest.raises(MalformedPageError) as exc_info:
            manager.run()

    assert exc_info.value.context["set_number"] == "1-1"
    assert exc_info.value.context["last_recorded"] is None


def test_year_listing(fake_site, throttle, tmp_path):
    fake_site.year_page(2019, build_year_page(["Razor Crest", "Death Star"]))
    fake_site.year_page(2020, build_year_page(["Mandalorian Helmet"]))
    query = Query.from_options(years=[2020, 2019])

    with make_manager(fake_site, throttle, tmp_path, query) as manager:
        summary = manager.run()

    assert summary.year_listings == {
        2019: ["Razor Crest", "Death Star"],
        2020: ["Mandalorian Helmet"],
    }
