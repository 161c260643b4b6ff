# Utils package - screenshots, email delivery and page helpers
from .email import EmailDeliveryClient, is_valid_email
from .overlays import ConsentModalDismisser, dismiss_consent_modals
from .screenshots import ScreenshotService, ScreenshotStore, process_screenshot

__all__ = [
    "EmailDeliveryClient",
    "is_valid_email",
    "ConsentModalDismisser",
    "dismiss_consent_modals",
    "ScreenshotService",
    "ScreenshotStore",
    "process_screenshot",
]
