"""
Example: A simulated trading day on a neighbourhood grid.

Solar output follows a daylight curve, wind is noisy, and households buy more
in the morning and evening. Every hour each participant reports or posts
what it has, then one match clears the book. Leftover offers carry over to
the next hour.
"""

import numpy as np

from energy_ledger import (
    EnergyLedger, Role, SettlementPricing, trade_summary, crossing_volume,
)

HOURS = 24
SEED = 7


def hourly_profiles(rng):
    hours = np.arange(HOURS)
    solar = np.clip(400 * np.sin((hours - 6) / 12 * np.pi), 0, None)
    wind = rng.normal(150, 40, HOURS).clip(0)
    household = 60 + 40 * np.exp(-((hours - 8) ** 2) / 4) + 60 * np.exp(-((hours - 19) ** 2) / 6)
    factory = np.where((hours >= 7) & (hours < 18), 300, 50)
    return {
        "solar": solar.astype(int),
        "wind": wind.astype(int),
        "household": household.astype(int),
        "factory": factory.astype(int),
    }


def main():
    print("=" * 80)
    print("GRID DAY - Hourly matching with midpoint settlement")
    print("=" * 80)
    print()

    rng = np.random.default_rng(SEED)
    profiles = hourly_profiles(rng)

    ledger = EnergyLedger("grid_day", verbose=False, pricing=SettlementPricing.MIDPOINT)
    ledger.initialize("operator")
    ledger.register("solar_coop", Role.PRODUCER)
    ledger.register("wind_park", Role.PRODUCER)
    ledger.register("homes", Role.CONSUMER)
    ledger.register("factory", Role.CONSUMER)
    ledger.register("battery", Role.PROSUMER)
    ledger.deposit("homes", 500_000)
    ledger.deposit("factory", 2_000_000)
    ledger.deposit("battery", 50_000)

    print(f"{'hour':>4} {'cross':>6} {'traded':>7} {'vwap':>7}")
    for hour in range(HOURS):
        traded_before = len(ledger.get_trades())
        solar_price = 30 if profiles["solar"][hour] > 200 else 45

        if profiles["solar"][hour] > 0:
            ledger.report_production("solar_coop", int(profiles["solar"][hour]), solar_price)
        if profiles["wind"][hour] > 0:
            ledger.report_production("wind_park", int(profiles["wind"][hour]), 40)
        ledger.post_demand("homes", int(profiles["household"][hour]), 55)
        ledger.post_demand("factory", int(profiles["factory"][hour]), 42)

        # The battery charges cheaply at midday and discharges in the evening
        if 10 <= hour < 15:
            ledger.post_demand("battery", 100, 35)
        elif 18 <= hour < 22:
            ledger.report_production("battery", 80, 50)

        cross = crossing_volume(ledger)
        ledger.match("homes")
        hour_trades = ledger.get_trades()[traded_before:]
        summary = trade_summary(hour_trades)
        vwap = f"{summary.vwap:7.2f}" if summary.vwap is not None else "      -"
        print(f"{hour:>4} {cross:>6} {summary.volume:>7} {vwap}")

    print()
    print("End of day")
    print("-" * 80)
    for identity in ledger.list_participants():
        p = ledger.get_participant(identity)
        print(f"  {identity:<11} balance={p.balance:>10,}  net energy={p.energy_balance:>7,}")

    day = trade_summary(ledger.get_trades())
    print()
    print(f"Trades: {day.count}, volume: {day.volume:,}, notional: {day.notional:,}, VWAP: {day.vwap:.2f}")
    print(f"Open reports: {len(ledger.open_reports())}, open demand: {len(ledger.open_demands())}")
    print(f"Conservation: {ledger.verify_conservation()['valid']}")


if __name__ == "__main__":
    main()
