#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Loading Utility for magsqw.

This module provides functions to load and validate a magnon model
configuration from a YAML file.
"""
import logging
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .schema import MagnonModelConfig

logger = logging.getLogger(__name__)


def read_yaml(filepath: str) -> Dict[str, Any]:
    """
    Reads a YAML file into a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid YAML or not a mapping.
    """
    try:
        with open(filepath, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {filepath}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file {filepath}: {e}")
        raise ValueError(f"Invalid YAML format in {filepath}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Top level of {filepath} must be a mapping, got {type(data).__name__}."
        logger.error(msg)
        raise ValueError(msg)
    return data


def load_model_config(filepath: str) -> MagnonModelConfig:
    """
    Loads and validates a magnon model configuration from a YAML file.

    Args:
        filepath (str): The path to the YAML configuration file.

    Returns:
        MagnonModelConfig: The validated configuration.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: If there's an error parsing the YAML or if the content
                    does not match the configuration schema.
    """
    logger.info(f"Loading magnon model configuration from: {filepath}")
    data = read_yaml(filepath)

    try:
        config = MagnonModelConfig.model_validate(data)
    except ValidationError as e:
        logger.error(f"Configuration validation failed for {filepath}: {e}")
        raise ValueError(f"Invalid magnon model configuration in {filepath}:\n{e}") from e

    if not config.atoms:
        logger.warning(f"No atoms defined in {filepath}; the model has no magnon modes.")

    logger.info(
        f"Configuration loaded: {len(config.atoms)} atoms, "
        f"{len(config.exchange_terms)} exchange terms, {len(config.variables)} variables."
    )
    return config
