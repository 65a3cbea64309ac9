from .api_event import ApiEvent

__all__ = ["ApiEvent"]
