#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Energy Ledger Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - Initialize, register participants, deposit tokens
  4-6:   Market          - Report production, post demand, match
  7-8:   Rejections      - Role gating, overdrafts, atomicity
  9-10:  Audit           - Transaction log, replay, persistence, conservation

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from energy_ledger import (
    EnergyLedger, Role, ExecuteResult,
    PostDemand, encode_instruction,
    supply_curve, demand_curve, crossing_volume, trade_summary,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    operator: str = "grid_operator"

    household_deposit: int = 100_000
    factory_deposit: int = 400_000
    rooftop_deposit: int = 2_000

    solar_energy: int = 1_000
    solar_price: int = 50
    wind_energy: int = 600
    wind_price: int = 45
    rooftop_energy: int = 80
    rooftop_price: int = 40

    household_energy: int = 500
    household_limit: int = 60
    factory_energy: int = 900
    factory_limit: int = 52


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_balances(ledger: EnergyLedger):
    for identity in ledger.list_participants():
        p = ledger.get_participant(identity)
        print(f"  {identity:<12} {p.role.name:<9} balance={p.balance:>9,}  energy={p.energy_balance:>6,}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_initialize():
    step_header(1, "Initialize the Ledger",
        "A ledger must be initialized exactly once before anything else.")

    print(">>> ledger = EnergyLedger('grid')")
    ledger = EnergyLedger("grid", verbose=True)
    print(f">>> ledger.initialize({CONFIG.operator!r})")
    ledger.initialize(CONFIG.operator)

    section_header("Initializing Twice")
    ledger.initialize(CONFIG.operator)
    print(f"last_error: {ledger.last_error!r} (code {ledger.last_error.code})")
    return ledger


def step_02_register(ledger: EnergyLedger):
    step_header(2, "Registering Participants",
        "Roles decide who may sell, who may buy, and who may do both.")

    ledger.register("solar_farm", Role.PRODUCER)
    ledger.register("wind_park", Role.PRODUCER)
    ledger.register("household", Role.CONSUMER)
    ledger.register("factory", Role.CONSUMER)
    ledger.register("rooftop", Role.PROSUMER)

    section_header("Roles Never Change")
    ledger.register("household", Role.PRODUCER)
    show_balances(ledger)
    return ledger


def step_03_deposit(ledger: EnergyLedger):
    step_header(3, "Depositing Tokens",
        "Everyone starts at zero. Buyers need tokens before they can settle.")

    ledger.deposit("household", CONFIG.household_deposit)
    ledger.deposit("factory", CONFIG.factory_deposit)
    ledger.deposit("rooftop", CONFIG.rooftop_deposit)
    show_balances(ledger)
    return ledger


# ============================================================================
# PHASE 2: MARKET (Steps 4-6)
# ============================================================================

def step_04_report_production(ledger: EnergyLedger):
    step_header(4, "Reporting Production",
        "Producers and prosumers offer energy at a fixed unit price.")

    ledger.report_production("solar_farm", CONFIG.solar_energy, CONFIG.solar_price)
    ledger.report_production("wind_park", CONFIG.wind_energy, CONFIG.wind_price)
    ledger.report_production("rooftop", CONFIG.rooftop_energy, CONFIG.rooftop_price)

    section_header("Supply Curve")
    curve = supply_curve(ledger)
    for price, depth in zip(curve.prices, curve.cumulative):
        print(f"  <= {price:>5.0f}: {depth:>8,.0f} units")
    return ledger


def step_05_post_demand(ledger: EnergyLedger):
    step_header(5, "Posting Demand",
        "Consumers and prosumers ask for energy up to a price limit.")

    ledger.post_demand("household", CONFIG.household_energy, CONFIG.household_limit)
    ledger.post_demand("factory", CONFIG.factory_energy, CONFIG.factory_limit)

    section_header("Demand Curve")
    curve = demand_curve(ledger)
    for price, depth in zip(curve.prices, curve.cumulative):
        print(f"  >= {price:>5.0f}: {depth:>8,.0f} units")
    print(f"\nCrossing volume (ignoring balances): {crossing_volume(ledger):,}")
    return ledger


def step_06_match(ledger: EnergyLedger):
    step_header(6, "Matching",
        "Cheapest asks meet highest bids; the seller's ask is the settled price.")

    ledger.match("factory")

    section_header("After Matching")
    show_balances(ledger)
    summary = trade_summary(ledger.get_trades())
    print(f"\n{summary.count} trades, {summary.volume:,} units, VWAP {summary.vwap:.2f}")

    section_header("Matching Again")
    ledger.match("household")
    print(f"Trades now: {len(ledger.get_trades())} (a matched book produces nothing new)")
    return ledger


# ============================================================================
# PHASE 3: REJECTIONS (Steps 7-8)
# ============================================================================

def step_07_role_gating(ledger: EnergyLedger):
    step_header(7, "Role Gating",
        "A producer cannot buy, a consumer cannot sell.")

    ledger.post_demand("solar_farm", 100, 60)
    ledger.report_production("household", 100, 10)

    section_header("Raw Instruction Bytes")
    data = encode_instruction(PostDemand(100, 60))
    print(f"PostDemand(100, 60) -> {data.hex()}")
    ledger.execute("solar_farm", data)
    return ledger


def step_08_atomicity(ledger: EnergyLedger):
    step_header(8, "Atomicity",
        "A rejected instruction leaves no trace.")

    before = ledger.state
    balance = ledger.get_balance("household")
    result = ledger.withdraw("household", balance + 1)
    print(f"result={result.value}, state unchanged: {ledger.state is before}")
    assert result == ExecuteResult.REJECTED
    return ledger


# ============================================================================
# PHASE 4: AUDIT (Steps 9-10)
# ============================================================================

def step_09_log_and_replay(ledger: EnergyLedger):
    step_header(9, "Transaction Log and Replay",
        "The log is the source of truth; replay re-derives the same state.")

    match_records = [r for r in ledger.transaction_log if r.trades]
    print(repr(match_records[-1]))

    ledger.verbose = False
    replayed = ledger.replay()
    print(f"\nreplayed state equals live state: {replayed.state == ledger.state}")

    section_header("Persistence")
    data = ledger.to_bytes()
    restored = EnergyLedger.from_bytes("grid_restored", data, verbose=False)
    print(f"{len(data):,} bytes, restored equals live: {restored.state == ledger.state}")
    return ledger


def step_10_conservation(ledger: EnergyLedger):
    step_header(10, "Conservation",
        "Trades move tokens and energy between participants; they create neither.")

    check = ledger.verify_conservation()
    print(f"total balance: {check['total_balance']:,}")
    print(f"deposits - withdrawals: {check['expected']:,}")
    print(f"valid: {check['valid']}")
    net_energy = sum(ledger.get_participant(i).energy_balance for i in ledger.list_participants())
    print(f"net energy across participants: {net_energy}")
    return ledger


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       ENERGY LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger = step_01_initialize()
    for step in (
        step_02_register, step_03_deposit,
        step_04_report_production, step_05_post_demand, step_06_match,
        step_07_role_gating, step_08_atomicity,
        step_09_log_and_replay, step_10_conservation,
    ):
        wait_for_enter()
        ledger = step(ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See examples/grid_day.py for a multi-round trading day
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
