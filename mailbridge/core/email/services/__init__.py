from .send import EmailSendService

__all__ = ["EmailSendService"]
