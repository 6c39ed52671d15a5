"""Tracked symbol universe.

Defined once at import time and never mutated. The upstream quote API is
keyed by base asset ticker ("BTC"), the rest of the system by pair
("BTC/USDT").
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SymbolCategory(str, Enum):
    MAJOR = "major"
    ALTCOIN = "altcoin"
    DEFI = "defi"
    LAYER1 = "layer1"
    LAYER2 = "layer2"
    MEME = "meme"
    STABLECOIN = "stablecoin"


class SymbolMapping(BaseModel):
    """A tracked trading pair."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    category: SymbolCategory

    @property
    def base_asset(self) -> str:
        """Upstream ticker, e.g. "BTC" for "BTC/USDT"."""
        return self.symbol.split("/", 1)[0]


SYMBOL_MAPPINGS: tuple[SymbolMapping, ...] = (
    SymbolMapping(symbol="BTC/USDT", name="Bitcoin", category=SymbolCategory.MAJOR),
    SymbolMapping(symbol="ETH/USDT", name="Ethereum", category=SymbolCategory.MAJOR),
    SymbolMapping(symbol="BNB/USDT", name="Binance Coin", category=SymbolCategory.MAJOR),
    SymbolMapping(symbol="XRP/USDT", name="Ripple", category=SymbolCategory.MAJOR),
    SymbolMapping(symbol="SOL/USDT", name="Solana", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="ADA/USDT", name="Cardano", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="AVAX/USDT", name="Avalanche", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="DOT/USDT", name="Polkadot", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="ATOM/USDT", name="Cosmos", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="NEAR/USDT", name="NEAR Protocol", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="ALGO/USDT", name="Algorand", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="ICP/USDT", name="Internet Computer", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="APT/USDT", name="Aptos", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="FLOW/USDT", name="Flow", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="KAS/USDT", name="Kaspa", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="MATIC/USDT", name="Polygon", category=SymbolCategory.LAYER2),
    SymbolMapping(symbol="OP/USDT", name="Optimism", category=SymbolCategory.LAYER2),
    SymbolMapping(symbol="ARB/USDT", name="Arbitrum", category=SymbolCategory.LAYER2),
    SymbolMapping(symbol="IMX/USDT", name="Immutable", category=SymbolCategory.LAYER2),
    SymbolMapping(symbol="UNI/USDT", name="Uniswap", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="LINK/USDT", name="Chainlink", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="AAVE/USDT", name="Aave", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="MKR/USDT", name="Maker", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="RUNE/USDT", name="THORChain", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="CRV/USDT", name="Curve DAO", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="DYDX/USDT", name="dYdX", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="1INCH/USDT", name="1inch", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="SUSHI/USDT", name="SushiSwap", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="SNX/USDT", name="Synthetix", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="LTC/USDT", name="Litecoin", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="BCH/USDT", name="Bitcoin Cash", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="XLM/USDT", name="Stellar", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="VET/USDT", name="VeChain", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="FIL/USDT", name="Filecoin", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="HBAR/USDT", name="Hedera", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="XMR/USDT", name="Monero", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="TRX/USDT", name="TRON", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="EOS/USDT", name="EOS", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="XTZ/USDT", name="Tezos", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="NEO/USDT", name="Neo", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="IOTA/USDT", name="IOTA", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="XDC/USDT", name="XinFin Network", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="SAND/USDT", name="The Sandbox", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="MANA/USDT", name="Decentraland", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="AXS/USDT", name="Axie Infinity", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="ENJ/USDT", name="Enjin Coin", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="CHZ/USDT", name="Chiliz", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="DOGE/USDT", name="Dogecoin", category=SymbolCategory.MEME),
    SymbolMapping(symbol="SHIB/USDT", name="Shiba Inu", category=SymbolCategory.MEME),
    SymbolMapping(symbol="GRT/USDT", name="The Graph", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="AR/USDT", name="Arweave", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="API3/USDT", name="API3", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="BAND/USDT", name="Band Protocol", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="OCEAN/USDT", name="Ocean Protocol", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="ZEC/USDT", name="Zcash", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="DASH/USDT", name="Dash", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="USDT/USD", name="Tether", category=SymbolCategory.STABLECOIN),
    SymbolMapping(symbol="USDC/USD", name="USD Coin", category=SymbolCategory.STABLECOIN),
    SymbolMapping(symbol="BUSD/USD", name="Binance USD", category=SymbolCategory.STABLECOIN),
    SymbolMapping(symbol="DAI/USD", name="Dai", category=SymbolCategory.STABLECOIN),
    SymbolMapping(symbol="LEO/USDT", name="UNUS SED LEO", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="HT/USDT", name="Huobi Token", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="OKB/USDT", name="OKB", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="FET/USDT", name="Fetch.ai", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="AGIX/USDT", name="SingularityNET", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="RNDR/USDT", name="Render", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="INJ/USDT", name="Injective", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="TON/USDT", name="Toncoin", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="SUI/USDT", name="Sui", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="THETA/USDT", name="Theta", category=SymbolCategory.ALTCOIN),
    SymbolMapping(symbol="KAVA/USDT", name="Kava", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="MINA/USDT", name="Mina", category=SymbolCategory.LAYER1),
    SymbolMapping(symbol="BLUR/USDT", name="Blur", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="LDO/USDT", name="Lido DAO", category=SymbolCategory.DEFI),
    SymbolMapping(symbol="STX/USDT", name="Stacks", category=SymbolCategory.LAYER2),
    SymbolMapping(symbol="QNT/USDT", name="Quant", category=SymbolCategory.ALTCOIN),
)

_BY_SYMBOL = {m.symbol: m for m in SYMBOL_MAPPINGS}


def get_symbol_mapping(symbol: str) -> SymbolMapping | None:
    """Look up a mapping by pair symbol."""
    return _BY_SYMBOL.get(symbol)


def is_symbol_supported(symbol: str) -> bool:
    return symbol in _BY_SYMBOL


def tracked_symbols(include_stablecoins: bool = False) -> list[str]:
    """Pair symbols in declaration order.

    Stablecoins are excluded by default: their signals carry no information.
    """
    return [
        m.symbol
        for m in SYMBOL_MAPPINGS
        if include_stablecoins or m.category != SymbolCategory.STABLECOIN
    ]
