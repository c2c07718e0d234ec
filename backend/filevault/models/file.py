import uuid

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from filevault.core.database import Base
from filevault.utils.timeutils import utcnow


class File(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    size = Column(BigInteger, nullable=False, default=0)
    content_type = Column(String, nullable=False)
    storage_key = Column(String, nullable=False, unique=True)
    public_url = Column(String, nullable=False)
    is_public = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow)

    share_links = relationship("ShareLink", back_populates="file", passive_deletes=True)
