from .settings import OfflineSettings, load_settings

__all__ = ["OfflineSettings", "load_settings"]
