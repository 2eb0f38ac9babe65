"""Basket fund accounting and rebalancing engine.

Packages:

- pricing: multi-source price feeds with ordered fallback
- ledger: custody balances, share registry, NAV and share price
- fees: management and high-water-mark performance fee accrual
- execution: trade executor / custody collaborators (paper by default)
- rebalance: drift detection and greedy trade planning
- emergency: pause / emergency circuit breaker
- engine: the `Fund` facade (deposit, redeem, rebalance) with locking and rollback
- persistence: persistence boundary (interfaces)
- storage: concrete state stores (in-memory, SQL)
"""
