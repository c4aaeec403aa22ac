from portalbot.config.loader import get_config, reset_config

__all__ = ["get_config", "reset_config"]
