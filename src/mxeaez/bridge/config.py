"""Bridge configuration via environment variables (MXEAEZ_BRIDGE_ prefix).

Learn: Same pydantic-settings approach as the EBS, but the bridge also
reads a local .env file since it is started by hand on the streaming PC.
"""

from typing import Literal

import httpx
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """All bridge configuration. Set via MXEAEZ_BRIDGE_* env vars."""

    # Which channel's events to run, and where to subscribe
    channel_id: str = ""
    ebs_ws: str = ""  # e.g. wss://ebs.example.com/bridge
    bridge_key: str = ""

    # Connection behaviour
    reconnect_backoff_seconds: float = 1.5
    ws_heartbeat_seconds: float = 30.0

    # When to hold a connection: always, while OBS streams or records, or
    # while Helix says we're live
    gate: Literal["always", "obs", "helix"] = "always"
    obs_url: str = "ws://127.0.0.1:4455"
    obs_password: str = ""
    obs_retry_seconds: float = 60.0
    live_poll_seconds: float = 60.0
    broadcaster_user_id: str = ""  # defaults to channel_id
    twitch_client_id: str = ""
    twitch_client_secret: str = ""

    # Local effect endpoints
    sb_http: str = "http://127.0.0.1:7474"  # Streamer.bot HTTP server
    local_hook_base: str = "http://127.0.0.1:18080"  # OBS/overlay daemon
    sb_action_tts: str = "TTS From Bridge"
    sb_action_voicemod: str = "Voicemod Random Timed"
    sb_action_timeout: str = "Timeout Anyone"
    timeout_seconds: int = 300

    model_config = SettingsConfigDict(
        env_prefix="MXEAEZ_BRIDGE_", env_file=".env", extra="ignore"
    )

    def subscribe_url(self) -> str:
        """EBS WebSocket URL with the handshake query parameters applied."""
        params = {"channel_id": self.channel_id}
        if self.bridge_key:
            params["key"] = self.bridge_key
        return str(httpx.URL(self.ebs_ws).copy_merge_params(params))
