"""mxeaez — viewer redemption backend and local effect bridge.

Viewers spend channel points in a Twitch extension panel to buy and redeem
items. The extension backend (EBS) commits inventory/currency changes and
fans redemption events out to every local bridge subscribed to the channel.
Each bridge serializes the resulting stream effects into one ordered queue.
"""

__version__ = "0.1.0"
