"""
Configuration de l'application / Application configuration.
Utilise pydantic-settings pour charger depuis .env ou variables d'environnement.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Device Association Service"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True

    # Database - SQLite par défaut pour le développement
    # Database - SQLite by default for development
    DATABASE_URL: str = "sqlite+aiosqlite:///./device_association.db"

    # CORS - origines autorisées / allowed origins
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Rate Limiting
    RATE_LIMIT_ASSOCIATE: str = "10/minute"
    RATE_LIMIT_DEFAULT: str = "60/minute"

    # Politique d'association / Association policy
    OWNER_ASSOCIATION_TYPE: str = "OWNER"
    MANY_TO_MANY_ENABLED: bool = True
    ASSOCIATION_TYPES: list[str] = ["OWNER", "DRIVER", "FAMILY", "FLEET_MANAGER"]
    FORBID_ASSOC_AFTER_TERMINATE: bool = False
    SUBSCRIPTION_CHECK_ENABLED: bool = False
    MOVE_CURRENT_DEVICE_TO_PROVISIONED: bool = True
    SEND_RESET_DEVICE: bool = False
    VEHICLE_PROFILE_UPDATE_ENABLED: bool = False
    DEVICE_TYPE: str = "dongle"

    # Systemes externes / External systems
    IDENTITY_REGISTRY_URL: str = "http://localhost:9000/oauth2/clients"
    NOTIFICATION_CENTER_URL: str = "http://localhost:9100/v1/notifications"
    NOTIFICATION_ID: str = "DeviceLifecycle"
    VEHICLE_PROFILE_URL: str = "http://localhost:9200/v1/vehicleProfiles"
    DEVICE_MESSAGE_URL: str = "http://localhost:9300/v1/devices/messages"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
