"""
Site Profiles - Configuration for the supported catalog site
=============================================================
Each site has a SiteProfile describing where its set pages live and which
CSS selectors find the set details and prices on them.

Only BrickEconomy is supported. The extraction rules in set_parser.py are
written against the page structure captured by these selectors; a template
change on the site means updating both.
"""

from errors import ConfigError
from scraper_engine import SiteProfile


# =============================================================================
# BRICKECONOMY
# =============================================================================
# Set detail pages are static HTML; no browser needed.

BRICK_ECONOMY = SiteProfile(
    name="BrickEconomy",
    key="brickeconomy",
    base_url="https://www.brickeconomy.com",
    set_url_template="/set/{set_number}/",
    year_url_template="/sets/year/{year}",
    output_file="legot.csv",
    set_list_file="set_list.csv",
    request_delay=0.5,
    selectors={
        "set_details": "div#SetDetails div.row",
        "detail_label": "div.col-xs-5",
        "detail_value": "div.col-xs-7",
        # the id literally says 'placeholder' so this might break
        "price_rows": "#ContentPlaceHolder1_PanelSetPricing div.row",
        "price_label_nested": "span.helppopover",
        "listed_price": "table#sales_region_table tr td div span.a",
        "year_listing": "h4 a",
    },
)


# =============================================================================
# SITE REGISTRY
# =============================================================================

SITE_PROFILES = {
    profile.key: profile
    for profile in (BRICK_ECONOMY,)
}


def get_site_profile(key: str) -> SiteProfile:
    """The profile registered under `key`, as chosen with --site."""
    if key not in SITE_PROFILES:
        available = ", ".join(SITE_PROFILES.keys())
        raise ConfigError(f"unknown site {key!r} (known: {available})")
    return SITE_PROFILES[key]


def list_sites() -> list:
    """Keys accepted by --site."""
    return list(SITE_PROFILES.keys())
