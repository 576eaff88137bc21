"""Configuration models."""

from .settings import FramingSettings
