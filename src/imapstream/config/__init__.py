from imapstream.config.settings import DEFAULT_PORTS, AccountOptions, Settings, get_settings

__all__ = ["DEFAULT_PORTS", "AccountOptions", "Settings", "get_settings"]
