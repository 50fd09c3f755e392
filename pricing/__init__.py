"""Order pricing rule engine.

Pure functions over immutable rule snapshots: eligibility matching, the
category hierarchy, validity gating, amount calculation and order-total
aggregation. Nothing here touches the database; the storefront package
loads snapshots and persists results.
"""
