"""Local bridge — turns channel redemption events into stream effects.

Learn: The bridge runs on the streamer's machine. It keeps one WebSocket
subscription to the EBS for its channel (only while the broadcast is
active), drops duplicate deliveries, and pushes each redemption through a
single serial queue so effects that touch the same camera/audio source
never overlap:

    EBS /bridge ─→ BridgeClient ─→ Deduplicator ─→ EffectRegistry ─→ EffectQueue
"""
