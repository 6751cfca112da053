"""Starting price levels per symbol.

Known symbols use a fixed table; anything else gets a stable price in
[50, 500) derived from the symbol hash, so the same unknown symbol always
starts at the same level across processes.
"""
from typing import Dict

from marketsim.managers.simulation_engine.seeds import symbol_hash


BASE_PRICES: Dict[str, float] = {
    # US large caps
    "AAPL": 180.00,
    "MSFT": 370.00,
    "TSLA": 250.00,
    "GOOGL": 140.00,
    "AMZN": 155.00,
    "NVDA": 480.00,
    "META": 340.00,
    "AMD": 140.00,
    "NFLX": 480.00,
    "SPY": 470.00,
    "QQQ": 400.00,
    # DAX 40
    "SAP.DE": 220.00,
    "SIE.DE": 185.00,
    "ALV.DE": 285.00,
    "BAS.DE": 45.00,
    "IFX.DE": 35.00,
    "BMW.DE": 95.00,
    "MBG.DE": 58.00,
    "VOW3.DE": 110.00,
    "DTE.DE": 28.00,
    "RWE.DE": 32.00,
    "EOAN.DE": 13.00,
    "MUV2.DE": 485.00,
    "CBK.DE": 17.00,
    "DBK.DE": 16.00,
    "ENR.DE": 28.00,
    "ADS.DE": 235.00,
    "BAYN.DE": 28.00,
    "HEI.DE": 115.00,
    "ZAL.DE": 32.00,
    "DB1.DE": 215.00,
    "RHM.DE": 580.00,
    "MTX.DE": 285.00,
    "AIR.DE": 155.00,
    "SRT3.DE": 245.00,
    "SY1.DE": 115.00,
    "HEN3.DE": 82.00,
    "1COV.DE": 55.00,
    "P911.DE": 68.00,
    "VNA.DE": 28.00,
    "FRE.DE": 35.00,
    "HFG.DE": 12.00,
    "DHER.DE": 28.00,
    "BEI.DE": 135.00,
    "HNR1.DE": 255.00,
    "BNR.DE": 65.00,
    "SHL.DE": 52.00,
    "FME.DE": 42.00,
    "MRK.DE": 165.00,
    "QIA.DE": 42.00,
    "PAH3.DE": 42.00,
}


def get_base_price(symbol: str) -> float:
    """Starting price for a symbol (case-insensitive)."""
    key = symbol.strip().upper()
    if key in BASE_PRICES:
        return BASE_PRICES[key]
    return 50.0 + float(symbol_hash(key) % 450)
