from mxeaez.events.models import Event, EventType, Viewer, new_event, now_ms

__all__ = ["Event", "EventType", "Viewer", "new_event", "now_ms"]
