"""
Dashboard user accounts.

Session handling lives outside this service; only the account records
managed from the users page are stored here.
"""

from sqlalchemy import Column, String, DateTime
from datetime import datetime
import uuid
from crowdsec_dashboard.database import Base


class User(Base):
    """Dashboard user account"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"
