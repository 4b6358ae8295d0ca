"""
Asset Classifier

Maps a symbol to the asset class used to select detectors:
- INDEX: cash-settled index options underlyings (SPX, NDX)
- EQUITY_ETF: the liquid index and sector ETFs
- STOCK: everything else
"""

from typing import FrozenSet

from opportunity_engine.shared.models.scoring import AssetClass

INDEX_SYMBOLS: FrozenSet[str] = frozenset({"SPX", "NDX"})

ETF_SYMBOLS: FrozenSet[str] = frozenset({
    "SPY", "QQQ", "IWM", "DIA",
    "XLF", "XLE", "XLK", "XLV", "XLI", "XLP",
})


def normalize_symbol(symbol: str) -> str:
    """Upper-case and strip the '$' / 'I:' index prefixes some feeds add."""
    upper = symbol.strip().upper()
    for prefix in ("$", "I:"):
        if upper.startswith(prefix):
            upper = upper[len(prefix):]
    return upper


def classify_asset(symbol: str) -> AssetClass:
    base = normalize_symbol(symbol)
    if base in INDEX_SYMBOLS:
        return AssetClass.INDEX
    if base in ETF_SYMBOLS:
        return AssetClass.EQUITY_ETF
    return AssetClass.STOCK
