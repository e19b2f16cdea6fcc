"""Schemas association : selecteurs, requetes, resultats / Association schemas: selectors, requests, results."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from device_association.models.association import AssociationStatus


# ─── Selecteur / Selector ───

class DeviceSelector(BaseModel):
    """Identifie un appareil et/ou une association / Identifies a device and/or an association."""
    serial_number: str | None = Field(None, max_length=64)
    imei: str | None = Field(None, max_length=32)
    bssid: str | None = Field(None, max_length=32)
    iccid: str | None = Field(None, max_length=32)
    imsi: str | None = Field(None, max_length=32)
    msisdn: str | None = Field(None, max_length=32)
    device_id: str | None = Field(None, max_length=64)
    user_id: str | None = Field(None, max_length=100)
    association_id: int | None = None

    def has_basic_data(self) -> bool:
        return bool(self.bssid or self.imei or self.serial_number)

    def device_filters(self) -> dict[str, str]:
        """Champs d'identite usine renseignes / Populated factory identity fields."""
        fields = ("serial_number", "imei", "bssid", "iccid", "imsi", "msisdn")
        return {f: getattr(self, f) for f in fields if getattr(self, f)}

    def is_empty(self) -> bool:
        return not (self.device_filters() or self.device_id or self.association_id)


# ─── Requetes / Requests ───

class DelegateRequest(DeviceSelector):
    """Delegation d'acces a un autre utilisateur / Access delegation to another user."""
    delegation_user_id: str = Field(min_length=1, max_length=100)
    association_type: str = Field(min_length=1, max_length=50)
    start_timestamp: datetime | None = None
    end_timestamp: datetime | None = None
    owner_user_id: str | None = Field(None, max_length=100)  # admin uniquement / admin only


class AssociationUpdateRequest(BaseModel):
    association_type: str | None = Field(None, max_length=50)
    start_timestamp: datetime | None = None
    end_timestamp: datetime | None = None


class AdminAssociateRequest(DeviceSelector):
    user_id: str = Field(min_length=1, max_length=100)


class ReplaceRequest(BaseModel):
    current: DeviceSelector
    replace_with: DeviceSelector

    @model_validator(mode="after")
    def _both_identified(self):
        if self.current.is_empty() or self.replace_with.is_empty():
            raise ValueError("current and replace_with must both identify a device")
        return self


class WipeRequest(BaseModel):
    serial_numbers: list[str] | None = None


# ─── Resultats / Results ───

class AssociationResult(BaseModel):
    association_id: int
    association_status: AssociationStatus
    device_id: str | None = None


class WipeResult(BaseModel):
    device_ids: list[str]


class AssociationRead(BaseModel):
    """Association avec attributs appareil joints / Association with joined device attributes."""
    model_config = ConfigDict(from_attributes=True)
    id: int
    serial_number: str
    device_id: str | None = None
    user_id: str
    association_type: str
    association_status: AssociationStatus
    start_timestamp: datetime | None = None
    end_timestamp: datetime | None = None
    associated_by: str | None = None
    associated_on: datetime | None = None
    disassociated_by: str | None = None
    disassociated_on: datetime | None = None
    modified_by: str | None = None
    modified_on: datetime | None = None
    imei: str | None = None
    bssid: str | None = None
    iccid: str | None = None
    imsi: str | None = None
    msisdn: str | None = None
    ssid: str | None = None
    device_state: str | None = None


class AssociationHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    user_id: str
    association_type: str
    association_status: AssociationStatus
    associated_on: datetime | None = None
    disassociated_on: datetime | None = None


class AssociationHistoryPage(BaseModel):
    total_count: int
    items: list[AssociationHistoryItem]


class AssociationTypeUsage(BaseModel):
    association_type: str
    count: int


class SerialAssociation(BaseModel):
    serial_number: str
    associated: bool
