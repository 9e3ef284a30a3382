"""View ORM model."""
from sqlalchemy import Column, String, Integer, ForeignKey, JSON
from sqlalchemy.orm import relationship
from flowbuilder.database import Base


class View(Base):
    __tablename__ = "views"

    id = Column(Integer, primary_key=True, autoincrement=True)
    caseid = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    model = Column(JSON, nullable=False, default=dict)  # field layout

    case = relationship("Case", back_populates="views")
