from sqlalchemy import Column, String, Text

from dentai.database import Base


class StoredRecord(Base):
    """One JSON document of a logical collection (users, images, ...)."""

    __tablename__ = "records"

    collection = Column(String, primary_key=True)
    id = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(String, nullable=False)
