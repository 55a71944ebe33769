"""Vehicle model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from backend.database import Base


class Vehicle(Base):
    """Represents the vehicle a reservation is made for."""
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    registration = Column(String, nullable=False)
    make = Column(String)
    model = Column(String)
