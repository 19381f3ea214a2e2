"""Logging, token, id and time helpers shared across the console"""
from .logger import get_logger, setup_logging
from .jwt import JWTValidator, get_current_user
from .idgen import generate_id, side_effect_key
from .time import utc_now

__all__ = ["get_logger", "setup_logging", "JWTValidator", "get_current_user", "generate_id", "side_effect_key", "utc_now"]
