"""Unit tests for the filter/rank pipeline."""

import pytest

from boostiq.core.enums import QueryKind, RankBy, RecommendationTier
from boostiq.core.errors import MalformedInputError
from boostiq.core.models import TickerSnapshot
from boostiq.scanner.models import PipelineStats, QueryProfile
from boostiq.scanner.pipeline import ScanPipeline, parse_tickers, sort_candidates
from boostiq.scanner.profiles import default_profiles

from conftest import make_raw_ticker


class TestParseTickers:
    def test_valid_record(self):
        tickers = parse_tickers([make_raw_ticker("FOOUSDT", count=42)])
        assert len(tickers) == 1
        t = tickers[0]
        assert t.symbol == "FOOUSDT"
        assert t.last_price == 2.0
        assert t.price_change_percent == 22.0
        assert t.quote_volume == 60_000_000
        assert t.trade_count == 42

    def test_missing_quote_volume_dropped_not_fatal(self):
        stats = PipelineStats()
        records = [
            {"symbol": "NOVOLUSDT", "lastPrice": "1.0", "priceChangePercent": "40"},
            make_raw_ticker("OKUSDT"),
        ]
        tickers = parse_tickers(records, stats=stats)
        assert [t.symbol for t in tickers] == ["OKUSDT"]
        assert stats.received == 2
        assert stats.reject_reasons == {"missing_field": 1}

    def test_null_field_dropped(self):
        record = make_raw_ticker("NULLUSDT")
        record["lastPrice"] = None
        assert parse_tickers([record]) == []

    def test_wrong_quote_dropped(self):
        stats = PipelineStats()
        assert parse_tickers([make_raw_ticker("ETHBTC")], stats=stats) == []
        assert stats.reject_reasons == {"wrong_quote": 1}

    @pytest.mark.parametrize("bad", ["nan", "inf", "-inf", "abc", "", "1e400"])
    def test_non_finite_numbers_dropped(self, bad):
        stats = PipelineStats()
        assert parse_tickers([make_raw_ticker("BADUSDT", pct=bad)], stats=stats) == []
        assert stats.reject_reasons == {"invalid_number": 1}

    def test_non_mapping_rows_dropped(self):
        stats = PipelineStats()
        tickers = parse_tickers(["junk", 42, None, make_raw_ticker("OKUSDT")], stats=stats)
        assert len(tickers) == 1
        assert stats.reject_reasons == {"not_a_mapping": 3}

    def test_blacklist(self):
        tickers = parse_tickers([make_raw_ticker("SCAMUSDT"), make_raw_ticker("OKUSDT")], blacklist=["SCAMUSDT"])
        assert [t.symbol for t in tickers] == ["OKUSDT"]

    def test_trade_count_alias(self):
        record = make_raw_ticker("OKUSDT")
        del record["count"]
        record["tradeCount"] = "77"
        assert parse_tickers([record])[0].trade_count == 77

    @pytest.mark.parametrize("payload", [None, {"symbol": "FOOUSDT"}, "FOOUSDT", 12])
    def test_malformed_collection_raises(self, payload):
        with pytest.raises(MalformedInputError):
            parse_tickers(payload)

    def test_snapshot_is_immutable(self):
        ticker = parse_tickers([make_raw_ticker()])[0]
        with pytest.raises(Exception):
            ticker.last_price = 5.0


class TestScanPipeline:
    def setup_method(self):
        self.profile = QueryProfile(
            kind=QueryKind.EXPLOSION_CANDIDATES,
            min_volume=1_000_000,
            min_gain=8,
            min_price=0.000001,
            max_price=100,
            top_n=3,
        )
        self.pipeline = ScanPipeline(self.profile)

    def test_filters_and_ranks(self, sample_tickers):
        results = self.pipeline.run(sample_tickers)
        assert [c.symbol for c in results] == ["FOOUSDT", "BARUSDT", "BAZUSDT"]
        assert results[0].score == 100
        assert results[0].recommendation.tier == RecommendationTier.STRONG_BUY
        assert all(0 <= c.score <= 100 for c in results)

    def test_stats(self, sample_tickers):
        self.pipeline.run(sample_tickers)
        stats = self.pipeline.last_stats
        assert stats.received == 8
        assert stats.rejected == 3
        assert stats.returned == 3

    def test_top_n_truncation(self):
        records = [make_raw_ticker(f"C{i}USDT", pct=str(10 + i)) for i in range(10)]
        assert len(self.pipeline.run(records)) == 3

    def test_equal_scores_tie_break(self):
        # All three score 100; gain breaks the tie, then symbol
        records = [
            make_raw_ticker("BBBUSDT", pct="30"),
            make_raw_ticker("AAAUSDT", pct="30"),
            make_raw_ticker("CCCUSDT", pct="45"),
        ]
        first = [c.symbol for c in self.pipeline.run(records)]
        second = [c.symbol for c in self.pipeline.run(list(reversed(records)))]
        assert first == ["CCCUSDT", "AAAUSDT", "BBBUSDT"]
        assert first == second

    def test_bounds_are_exclusive(self):
        records = [
            make_raw_ticker("EDGEUSDT", pct="8"),
            make_raw_ticker("PRICEUSDT", last="100", pct="9"),
            make_raw_ticker("VOLUSDT", volume="1000000", pct="9"),
        ]
        assert self.pipeline.run(records) == []

    def test_empty_input(self):
        assert self.pipeline.run([]) == []

    def test_malformed_input_aborts(self):
        with pytest.raises(MalformedInputError):
            self.pipeline.run({"not": "a list"})

    def test_trade_count_and_max_volume_predicates(self):
        profile = QueryProfile(kind=QueryKind.NEW_LISTINGS, max_volume=5_000_000, min_trade_count=100)
        pipeline = ScanPipeline(profile)
        ticker_ok = TickerSnapshot(symbol="AUSDT", last_price=1, price_change_percent=1,
                                   quote_volume=2_000_000, trade_count=150)
        ticker_few_trades = ticker_ok.model_copy(update={"trade_count": 100})
        ticker_big = ticker_ok.model_copy(update={"quote_volume": 5_000_000})
        assert pipeline.passes_filters(ticker_ok) is True
        assert pipeline.passes_filters(ticker_few_trades) is False
        assert pipeline.passes_filters(ticker_big) is False


class TestSortCandidates:
    def setup_method(self):
        self.pipeline = ScanPipeline(QueryProfile(kind=QueryKind.TOP_GAINERS, top_n=10))

    def _candidates(self):
        records = [
            make_raw_ticker("AUSDT", pct="5", volume="90000000"),
            make_raw_ticker("BUSDT", pct="40", volume="2000000"),
            make_raw_ticker("CUSDT", pct="12", volume="30000000"),
        ]
        return self.pipeline.run(records)

    def test_rank_by_gain(self):
        ranked = sort_candidates(self._candidates(), RankBy.GAIN)
        assert [c.symbol for c in ranked] == ["BUSDT", "CUSDT", "AUSDT"]

    def test_rank_by_volume(self):
        ranked = sort_candidates(self._candidates(), RankBy.VOLUME)
        assert [c.symbol for c in ranked] == ["AUSDT", "CUSDT", "BUSDT"]


class TestDefaultProfiles:
    def test_profiles(self):
        profiles = default_profiles(top_n=7, blacklist=["XUSDT"])
        assert set(profiles) == {
            QueryKind.EXPLOSION_CANDIDATES, QueryKind.TOP_GAINERS, QueryKind.NEW_LISTINGS,
        }
        assert profiles[QueryKind.EXPLOSION_CANDIDATES].min_gain == 8
        assert profiles[QueryKind.TOP_GAINERS].rank_by == RankBy.GAIN
        assert profiles[QueryKind.NEW_LISTINGS].mark_new is True
        assert all(p.top_n == 7 for p in profiles.values())
        assert all(p.blacklist == ("XUSDT",) for p in profiles.values())

    def test_overrides(self):
        profiles = default_profiles(overrides={"explosion-candidates": {"min_gain": 12, "top_n": 2}})
        assert profiles[QueryKind.EXPLOSION_CANDIDATES].min_gain == 12
        assert profiles[QueryKind.EXPLOSION_CANDIDATES].top_n == 2
        assert profiles[QueryKind.TOP_GAINERS].top_n == 5

    def test_new_listings_profile(self, sample_tickers):
        pipeline = ScanPipeline(default_profiles()[QueryKind.NEW_LISTINGS])
        results = pipeline.run(sample_tickers)
        assert [c.symbol for c in results] == ["BAZUSDT", "NEWUSDT"]
        assert all(c.is_new for c in results)
