"""Field ORM model."""
from sqlalchemy import Column, String, Text, Integer, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship
from flowbuilder.database import Base


class Field(Base):
    __tablename__ = "fields"

    id = Column(Integer, primary_key=True, autoincrement=True)
    caseid = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, default="Text")
    label = Column(String(255), nullable=False)
    required = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    options = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)

    case = relationship("Case", back_populates="fields")
