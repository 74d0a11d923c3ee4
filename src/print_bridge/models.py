from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class NetworkPrinter(Base):
    __tablename__ = "printers"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    ip_address = Column(String(64), nullable=False)
    port = Column(Integer, nullable=False, default=9100)
    bridge_url = Column(String(200), nullable=True)   # remote bridge serving this printer
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "ipAddress": self.ip_address,
            "port": self.port,
            "bridgeUrl": self.bridge_url,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
