"""
Taxonomie des echecs d'association / Association failure taxonomy.

Chaque echec porte un type (ErrorKind) et un code stable (ErrorCode).
Every failure carries a kind (ErrorKind) and a stable code (ErrorCode).
"""

import enum


class ErrorKind(str, enum.Enum):
    """Famille d'echec / Failure family."""
    VALIDATION = "VALIDATION"          # entree invalide, rejet avant mutation
    PRECONDITION = "PRECONDITION"      # etat incompatible, rejet avant mutation
    NOT_FOUND = "NOT_FOUND"
    DATA_INTEGRITY = "DATA_INTEGRITY"  # plusieurs lignes la ou une seule est attendue
    FAN_OUT = "FAN_OUT"                # echec externe apres commit local
    UNAVAILABLE = "UNAVAILABLE"        # systeme externe indisponible avant commit


class ErrorCode(enum.Enum):
    """Codes d'erreur stables / Stable error codes."""
    BASIC_DATA_MANDATORY = ("assoc-001", "Either BSSID or IMEI or serial number is mandatory.")
    FETCHING_FACTORY_DATA_ERROR = ("assoc-002", "No device found for the given input.")
    INVALID_FACTORY_STATE = ("assoc-003", "Device is in an invalid state or already assigned.")
    ASSO_DATA_NOT_FOUND = ("assoc-004", "Association data does not exist for given input.")
    DEVICE_TERMINATED = ("assoc-007", "Device was terminated and cannot be associated again.")
    STOLEN_OR_FAULTY = ("assoc-008", "Device is stolen or faulty.")
    USER_ID_MANDATORY = ("assoc-009", "User ID is mandatory.")
    ASSO_INTEGRITY_ERROR = ("assoc-012", "Association data integrity error: more than one record.")
    ASSO_NOTIF_ERROR = ("assoc-013", "Failed to send notification to user.")
    ASSO_DETAILS_NOT_FOUND = ("assoc-025", "Association details not found.")
    DE_REGISTER_FAILED = ("assoc-037", "Failed to de-register device credentials.")
    REGISTER_FAILED = ("assoc-038", "Failed to register device credentials.")
    INVALID_REPLACE_REQUEST_DATA = ("assoc-040", "Invalid device replace request data.")
    INVALID_CURRENT_DEVICE_FOR_REPLACE = ("assoc-041", "Current device not found for replacement.")
    INVALID_CURRENT_DEVICE_STATE = ("assoc-042", "Current device must be faulty or stolen.")
    DATABASE_INTEGRITY_ERROR = ("assoc-043", "Device registry integrity error: more than one record.")
    INVALID_REPLACEMENT_DEVICE_STATE = ("assoc-044", "Replacement device must be provisioned.")
    INACTIVE_DEVICE_FOR_REPLACEMENT = ("assoc-045", "No active credential registration for the current device.")
    ASSOCIATION_DOES_NOT_EXIST = ("assoc-046", "Association data does not exist for the current device.")
    INVALID_REPLACEMENT_DEVICE = ("assoc-047", "Replacement device not found.")
    VEHICLE_PROFILE_UPDATE_FAILED = ("assoc-048", "Vehicle profile update failed after device replacement.")
    SUBSCRIPTION_ACTIVATION_PENDING = ("assoc-074", "Subscription activation is still pending.")
    SUBSCRIPTION_SUSPEND_PENDING = ("assoc-062", "Subscription suspension must be completed before terminate.")
    ASSOCIATION_HISTORY_NOT_FOUND = ("assoc-052", "No association history found for the device.")
    WIPE_DATA_NO_ASSOC_FOUND = ("assoc-076", "No association found for the user.")
    WIPE_DATA_NO_ASSOC_FOUND_FOR_SOME_DEVICE = ("assoc-077", "No association found for one or more requested devices.")
    WIPE_DATA_NO_ASSOC_STATE_FOUND = ("assoc-078", "No device is in ASSOCIATED state.")
    WIPE_DATA_ASSOCIATION_FAILURE = ("assoc-079", "Wipe data failed while re-associating the device.")
    WIPE_DATA_TERMINATION_FAILURE = ("assoc-080", "Wipe data failed while terminating the device.")
    WIPE_DATA_ACTIVATION_FAILURE = ("assoc-081", "Wipe data failed while re-activating the device.")
    DELEGATION_TYPE_NOT_ALLOWED = ("assoc-095", "Association type is not allowed.")
    START_END_TIME_INVALID = ("assoc-096", "End time cannot be before start time.")
    ASSOCIATION_ALREADY_EXISTS = ("assoc-097", "Provided user is already associated to the device.")
    OWNER_VALIDATION_FAILED = ("assoc-098", "Requesting user is not the owner of the device.")
    INVALID_USER_DETAILS = ("assoc-099", "User details provided are invalid.")
    OWNER_ASSO_NOT_FOUND = ("assoc-101", "Owner association not found for the device.")
    ASSOC_TYPE_VALIDATION_FAILURE = ("assoc-102", "Association type validation failed.")
    TYPE_CANNOT_BE_OWNER = ("assoc-108", "Association type cannot be updated to owner.")
    USER_NOT_OWNER_OF_DEVICE = ("assoc-109", "User is not owner of the device.")
    ASSOCIATION_TERMINATED = ("assoc-110", "Association is already disassociated.")
    ASSOCIATION_SUSPENDED = ("assoc-111", "Association is suspended, restore it before terminate.")
    ASSOCIATION_UPDATE_DATA_MANDATORY = ("assoc-120", "Association type, start time or end time is mandatory.")
    OWNER_TERMINATION_VALIDATION_FAILED = ("assoc-121", "Not a valid user to perform termination.")
    INVALID_DEVICE_STATE = ("assoc-125", "Device is not in the expected state.")
    INVALID_HISTORY_QUERY = ("assoc-126", "Invalid history query parameters.")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]


class AssociationError(Exception):
    """Echec type d'une operation / Typed operation failure."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, error: ErrorCode, details: dict | None = None):
        super().__init__(f"{error.code}: {error.message}")
        self.error = error
        self.details = details or {}

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "kind": self.kind.value}


class ValidationFailed(AssociationError):
    kind = ErrorKind.VALIDATION


class PreconditionFailed(AssociationError):
    kind = ErrorKind.PRECONDITION


class AssociationNotFound(AssociationError):
    kind = ErrorKind.NOT_FOUND


class DataIntegrityFault(AssociationError):
    """Jamais resolu en choisissant une ligne / Never resolved by picking a row."""
    kind = ErrorKind.DATA_INTEGRITY


class FanOutFailure(AssociationError):
    """Echec externe apres commit local / External failure after local commit."""
    kind = ErrorKind.FAN_OUT


class ExternalUnavailable(AssociationError):
    kind = ErrorKind.UNAVAILABLE


class WipeDataFailure(AssociationError):
    """Type herite de la cause / Kind inherited from the cause."""
    kind = ErrorKind.FAN_OUT

    def __init__(self, error: ErrorCode, serial_number: str, cause: Exception):
        super().__init__(error, {"serial_number": serial_number, "cause": str(cause)})
        if isinstance(cause, AssociationError):
            self.kind = cause.kind
        self.__cause__ = cause


class AdapterError(Exception):
    """Erreur remontee par un adaptateur externe / Error raised by an external adapter."""

    def __init__(self, adapter: str, detail: str):
        super().__init__(f"{adapter}: {detail}")
        self.adapter = adapter
        self.detail = detail
