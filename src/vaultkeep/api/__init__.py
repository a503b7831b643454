# API Module - FastAPI HTTP surface

from .deps import Services, build_services, current_account, get_services, set_services
from .main import app, create_app

__all__ = [
    "app",
    "create_app",
    "Services",
    "build_services",
    "get_services",
    "set_services",
    "current_account",
]
