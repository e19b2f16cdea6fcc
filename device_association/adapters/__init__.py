"""Adaptateurs vers les systemes externes / Adapters to external systems."""

from device_association.adapters.device_registry import DeviceRegistryAdapter, SqlDeviceRegistry
from device_association.adapters.identity_registration import HttpIdentityRegistry, IdentityRegistrationAdapter
from device_association.adapters.notification import HttpNotificationCenter, NotificationAdapter
from device_association.adapters.vehicle_registry import (
    DeviceMessenger,
    HttpDeviceMessenger,
    HttpVehicleRegistry,
    VehicleRegistryAdapter,
)

__all__ = [
    "DeviceRegistryAdapter",
    "SqlDeviceRegistry",
    "IdentityRegistrationAdapter",
    "HttpIdentityRegistry",
    "NotificationAdapter",
    "HttpNotificationCenter",
    "VehicleRegistryAdapter",
    "HttpVehicleRegistry",
    "DeviceMessenger",
    "HttpDeviceMessenger",
]
