"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover all event types in the system.
Every state-mutating shop action publishes one of these after its
inventory/currency change has committed.
"""

# ─── Viewer actions ──────────────────────────────────────

REDEEM = "redeem"  # viewer consumed an item; bridges run the effect
SELL = "sell"  # viewer sold an item back for points
MYSTERY = "mystery"  # mystery box rolled a prize

# ─── Admin actions ───────────────────────────────────────

GRANT = "grant"  # item granted to one viewer (targetOpaque)
GRANT_ALL = "grant_all"  # item granted to every recently active viewer
REFUND = "refund"  # redemption reversed

# ─── Transport control frames (not events) ───────────────

PING = "ping"
PONG = "pong"

EVENT_TYPES = frozenset({REDEEM, GRANT, GRANT_ALL, REFUND, MYSTERY, SELL})
