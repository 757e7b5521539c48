from garagehub.models.customer import Customer  # noqa: F401
from garagehub.models.vehicle import Vehicle  # noqa: F401
from garagehub.models.appointment import Appointment  # noqa: F401
from garagehub.models.repair_order import RepairOrder  # noqa: F401
from garagehub.models.invoice import Invoice  # noqa: F401
from garagehub.models.inspection import Inspection  # noqa: F401
from garagehub.models.inventory import InventoryItem  # noqa: F401
from garagehub.models.user import User  # noqa: F401
from garagehub.models.audit import AuditLog  # noqa: F401
