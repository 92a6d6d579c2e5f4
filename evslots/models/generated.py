from sqlalchemy import Column, Integer, Text, text

from sqlalchemy.orm import declarative_base

Base = declarative_base()
metadata = Base.metadata


class SlotDocuments(Base):
    __tablename__ = 'slot_documents'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, unique=True)
    data = Column(Text, nullable=False)
    fingerprint = Column(Text, nullable=False)
    backup = Column(Text)
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
