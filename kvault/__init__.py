"""kvault: Cloudreve cache backed by a Telegram storage channel."""

__version__ = "0.1.0"
