"""Named query profiles, one per kind of top-N request."""

from dataclasses import replace
from typing import Dict, Iterable, Optional

from ..core.enums import QueryKind, RankBy
from .models import QueryProfile

# Universe every query starts from
BASE_MIN_VOLUME = 1_000_000
BASE_MIN_PRICE = 0.000001
BASE_MAX_PRICE = 100

EXPLOSION_MIN_GAIN = 8
NEW_LISTING_MAX_VOLUME = 5_000_000
NEW_LISTING_MIN_GAIN = -10
NEW_LISTING_MIN_TRADES = 100


def base_profile(kind: QueryKind, quote_currency: str = "USDT", blacklist: Iterable[str] = ()) -> QueryProfile:
    return QueryProfile(
        kind=kind,
        quote_currency=quote_currency,
        blacklist=tuple(blacklist),
        min_volume=BASE_MIN_VOLUME,
        min_price=BASE_MIN_PRICE,
        max_price=BASE_MAX_PRICE,
    )


def default_profiles(
    quote_currency: str = "USDT",
    blacklist: Iterable[str] = (),
    top_n: int = 5,
    overrides: Optional[Dict[str, Dict]] = None,
) -> Dict[QueryKind, QueryProfile]:
    """Build the ranked query profiles.

    *overrides* maps a kind value (e.g. ``"top-gainers"``) to profile fields
    to replace.
    """
    blacklist = tuple(blacklist)

    profiles = {
        QueryKind.EXPLOSION_CANDIDATES: replace(
            base_profile(QueryKind.EXPLOSION_CANDIDATES, quote_currency, blacklist),
            min_gain=EXPLOSION_MIN_GAIN,
            top_n=top_n,
        ),
        QueryKind.TOP_GAINERS: replace(
            base_profile(QueryKind.TOP_GAINERS, quote_currency, blacklist),
            min_gain=0,
            rank_by=RankBy.GAIN,
            top_n=top_n,
        ),
        QueryKind.NEW_LISTINGS: replace(
            base_profile(QueryKind.NEW_LISTINGS, quote_currency, blacklist),
            max_volume=NEW_LISTING_MAX_VOLUME,
            min_gain=NEW_LISTING_MIN_GAIN,
            min_trade_count=NEW_LISTING_MIN_TRADES,
            top_n=top_n,
            mark_new=True,
        ),
    }

    for kind_value, fields in (overrides or {}).items():
        kind = QueryKind(kind_value)
        if kind in profiles:
            profiles[kind] = replace(profiles[kind], **fields)

    return profiles
