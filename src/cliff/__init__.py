"""
cliff - a CloudFormation stack diff tool.
"""

__version__ = "1.0.0"

from .config import Settings, load_settings

__all__ = ["Settings", "load_settings"]
