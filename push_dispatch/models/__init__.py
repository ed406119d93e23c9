"""
ORM models. Importing this package registers every table with Base.metadata,
which Alembic autogenerate and the test fixtures rely on.
"""

from push_dispatch.models.content import Image, Message
from push_dispatch.models.device import Device
from push_dispatch.models.household import HouseholdMember, Profile

__all__ = ["Device", "HouseholdMember", "Image", "Message", "Profile"]
