from sqlalchemy import Column, Integer, String

from ticketdesk.core.database import Base


class CategoryFilter(Base):
    __tablename__ = "category_filters"

    id = Column(Integer, primary_key=True, index=True)
    sid = Column(String(128), unique=True, index=True, nullable=False)
    category = Column(String(8), nullable=False)
