"""Resource model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from backend.database import Base


class Resource(Base):
    """Represents a garage that customers can book.

    The owner and both booking flags are written by the onboarding and
    purchasing workflows; the booking engine only reads them.
    """
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), index=True)
    accepts_bookings = Column(Boolean, nullable=False, default=False)
    quota_allotted = Column(Integer, nullable=False, default=0)
