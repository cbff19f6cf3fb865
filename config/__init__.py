"""
Configuration module for ArticleFlow Publisher.
"""
from .constants import *
from .logging_config import setup_logger, get_logger, logger

__all__ = [
    'setup_logger',
    'get_logger',
    'logger',
]
