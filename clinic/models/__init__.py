# Import every model so relationships resolve and metadata is complete
from clinic.models.user import User, UserRole  # noqa: F401
from clinic.models.service import Service  # noqa: F401
from clinic.models.doctor_slot import DoctorSlot  # noqa: F401
from clinic.models.doctor_availability import DoctorAvailability  # noqa: F401
from clinic.models.appointment import Appointment  # noqa: F401
from clinic.models.notification import Notification  # noqa: F401
