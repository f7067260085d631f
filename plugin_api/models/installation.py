from sqlalchemy import Column, String, DateTime
from plugin_api.db import Base

class Installation(Base):
    __tablename__ = "installations"
    tenant_id = Column(String(128), primary_key=True)
    secret = Column(String(256), nullable=False)
    tenant_name = Column(String(256), nullable=True)
    platform_url = Column(String(512), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
