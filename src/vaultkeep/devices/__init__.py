# Devices Module - Client installations and push-token lifecycle

from .store import Device, DeviceStore

__all__ = ["Device", "DeviceStore"]
