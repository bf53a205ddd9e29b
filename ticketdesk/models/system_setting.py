from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from ticketdesk.core.database import Base


class SystemSetting(Base):
    __tablename__ = "system_settings"

    id = Column(String(32), primary_key=True, default="settings")
    last_upload_time = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
