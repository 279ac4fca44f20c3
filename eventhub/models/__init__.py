from eventhub.models.user import User
from eventhub.models.event import Event
from eventhub.models.registration import Registration
from eventhub.models.enums import (
    EventStatus,
    EventType,
    EventFormat,
    Visibility,
    RegistrationStatus,
    RegistrationType,
    UserRole,
)
