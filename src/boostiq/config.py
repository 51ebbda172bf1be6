"""Configuration: defaults, environment overrides and profile building."""

import copy
import logging
import os
from typing import Dict, Optional

from dotenv import load_dotenv

from .core.enums import QueryKind
from .scanner.models import QueryProfile
from .scanner.profiles import default_profiles

logger = logging.getLogger(__name__)


def default_config() -> Dict:
    """Default configuration."""
    return {
        'source': {
            'name': 'ccxt',          # 'ccxt' or 'rest'
            'exchange': 'binance',
            'base_url': 'https://api.binance.com',
            'request_timeout': 10.0,  # seconds, per upstream call
        },
        'cache': {
            'ttl_seconds': 30.0,
            'max_entries': None,
            'sweep_interval_seconds': None,  # no background sweep
        },
        'scanner': {
            'quote_currency': 'USDT',
            'blacklist': [],
            'top_n': 5,
            'enrich_with_candles': False,
            'candle_interval': '1h',
            'candle_limit': 50,
            'candle_concurrency': 5,
            'profiles': {},  # per-kind field overrides, keyed by kind value
        },
        'scoring': {
            'rsi_period': 14,
            'rsi_overbought': 70.0,
            'rsi_oversold': 30.0,
            'volume_spike_threshold': 3.0,
        },
        'logging': {
            'level': 'INFO',
        },
    }


def _truthy(raw: str) -> Optional[bool]:
    if raw in ('1', 'true', 'yes'):
        return True
    if raw in ('0', 'false', 'no'):
        return False
    return None


def config_from_env() -> Dict:
    """Build config dict from BOOSTIQ_* environment variables."""
    load_dotenv()
    config: Dict = {}

    # Source
    source_name = os.getenv('BOOSTIQ_SOURCE', '').strip()
    base_url = os.getenv('BOOSTIQ_BASE_URL', '').strip()
    timeout = os.getenv('BOOSTIQ_REQUEST_TIMEOUT', '').strip()
    if source_name or base_url or timeout:
        config['source'] = {}
        if source_name:
            config['source']['name'] = source_name
        if base_url:
            config['source']['base_url'] = base_url
        if timeout:
            config['source']['request_timeout'] = float(timeout)

    # Cache
    ttl = os.getenv('BOOSTIQ_CACHE_TTL', '').strip()
    max_entries = os.getenv('BOOSTIQ_CACHE_MAX_ENTRIES', '').strip()
    if ttl or max_entries:
        config['cache'] = {}
        if ttl:
            config['cache']['ttl_seconds'] = float(ttl)
        if max_entries:
            config['cache']['max_entries'] = int(max_entries)

    # Scanner
    top_n = os.getenv('BOOSTIQ_TOP_N', '').strip()
    quote = os.getenv('BOOSTIQ_QUOTE_CURRENCY', '').strip()
    blacklist = os.getenv('BOOSTIQ_BLACKLIST', '').strip()
    enrich = _truthy(os.getenv('BOOSTIQ_ENRICH_WITH_CANDLES', '').strip().lower())
    if top_n or quote or blacklist or enrich is not None:
        config['scanner'] = {}
        if top_n:
            config['scanner']['top_n'] = int(top_n)
        if quote:
            config['scanner']['quote_currency'] = quote
        if blacklist:
            config['scanner']['blacklist'] = [s.strip() for s in blacklist.split(',') if s.strip()]
        if enrich is not None:
            config['scanner']['enrich_with_candles'] = enrich

    # Logging
    level = os.getenv('BOOSTIQ_LOG_LEVEL', '').strip()
    if level:
        config['logging'] = {'level': level.upper()}

    return config


def merge_config(base: Dict, override: Optional[Dict]) -> Dict:
    """Merge *override* into a copy of *base*, one level of nested sections deep."""
    merged = copy.deepcopy(base)
    for key, val in (override or {}).items():
        if isinstance(val, dict) and isinstance(merged.get(key), dict):
            merged[key].update(val)
        else:
            merged[key] = val
    return merged


def load_config(overrides: Optional[Dict] = None, use_env: bool = True) -> Dict:
    """Defaults <- environment <- explicit overrides."""
    config = default_config()
    if use_env:
        config = merge_config(config, config_from_env())
    return merge_config(config, overrides)


def build_profiles(config: Dict) -> Dict[QueryKind, QueryProfile]:
    """Ranked query profiles with the scanner section applied."""
    scanner = config.get('scanner', {})
    return default_profiles(
        quote_currency=scanner.get('quote_currency', 'USDT'),
        blacklist=scanner.get('blacklist', []),
        top_n=scanner.get('top_n', 5),
        overrides=scanner.get('profiles') or None,
    )
