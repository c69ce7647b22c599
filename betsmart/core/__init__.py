"""Core mathematics and configuration for the BetSmart prediction engine.

This package contains pure, league-agnostic building blocks:

- ``odds_math``          — American / decimal / probability conversion, no-vig
- ``edge``               — edge and expected value of a priced selection
- ``kelly``              — fractional Kelly staking and bankroll simulation
- ``league_config``      — per-league constants and engine settings
- ``strategy_interface`` — ABC and DTOs for per-league prediction strategies

Nothing in this package imports from ``betsmart.services`` or ``betsmart.models``.
All modules except ``league_config.EngineSettings.from_env`` are
side-effect-free and unit-testable in isolation.
"""
