"""
Factories used by host applications to discover and create the model.
"""
import logging
from typing import Tuple

from . import __version__
from .core import MagnonModel
from .sqwbase import SqwBase

logger = logging.getLogger(__name__)

MODULE_IDENT = "magnonmod"
MODULE_LONG_NAME = "Magnon Dynamics"


def sqw_info() -> Tuple[str, str, str]:
    """(version, identifier, long name) of the S(q,E) module."""
    logger.info(f"Calling sqw_info for {MODULE_IDENT}.")
    return __version__, MODULE_IDENT, MODULE_LONG_NAME


def sqw_construct(cfg_file: str = "") -> SqwBase:
    """
    Creates a magnon model from a configuration file path.

    Never raises: failures are logged and reported through `is_ok()` of the
    returned model.
    """
    logger.info(f"Calling sqw_construct for {MODULE_IDENT}.")
    try:
        return MagnonModel(cfg_file or None)
    except Exception:
        logger.exception(f"Unexpected error while constructing the model from '{cfg_file}'.")
        model = MagnonModel()
        model._ok = False
        return model
