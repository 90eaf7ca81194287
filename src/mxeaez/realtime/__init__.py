"""Real-time infrastructure — channel hub + Redis relay + WebSocket.

Learn: Events flow in two hops:
1. Services → publish_event() → Redis PUBLISH (or local hub without Redis)
2. Hub → every open /bridge WebSocket subscribed to the channel

This decouples event producers (shop services) from consumers (bridges).
"""
