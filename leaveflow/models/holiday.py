from sqlalchemy import Column, Integer, String, Date, Boolean, Text
from leaveflow.database import Base


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    recurring = Column(Boolean, default=True, nullable=False, index=True)  # same month/day every year
    description = Column(Text, nullable=True)
