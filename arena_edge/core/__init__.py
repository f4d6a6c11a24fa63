"""Core mathematics, data types and configuration for the Arena Edge engine.

This package contains pure building blocks:

- ``models``: frozen DTOs (Prediction, Bet, BetSeries, RealizedResult)
- ``bet_math``: combined probability, payout, EV and ranking scores
- ``strategy_config``: the five risk-tier profiles and engine tunables
- ``risk_stats``: Sharpe, Sortino, drawdown, profit factor, consistency

Nothing in this package imports from ``arena_edge.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
