"""Email provider adapters - Console and Resend implementations."""

from .console import ConsoleEmailProvider
from .resend import ResendEmailProvider

__all__ = ["ConsoleEmailProvider", "ResendEmailProvider"]
