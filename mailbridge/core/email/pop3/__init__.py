from .client import POP3Client
from .connection import POP3Connection

__all__ = ["POP3Client", "POP3Connection"]
