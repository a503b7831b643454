# Notify Module - Push relay and outbound mail (best effort)

from .mail import Mailer
from .push import NotificationType, PushRelay, reset_token_cache

__all__ = ["Mailer", "PushRelay", "NotificationType", "reset_token_cache"]
