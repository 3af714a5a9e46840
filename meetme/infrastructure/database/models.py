import uuid
from sqlalchemy import Column, String, DateTime, Float, ForeignKey, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Event(Base):
    __tablename__ = "event"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    create_time = Column(DateTime, server_default=func.now())


class Template(Base):
    __tablename__ = "template"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("event.id"), nullable=True)
    name = Column(String, nullable=False)
    type = Column(String)
    format = Column(String, nullable=False, default="square")
    image_url = Column(String, nullable=False)
    photo_frame_x = Column(Float, nullable=False, default=0.0)
    photo_frame_y = Column(Float, nullable=False, default=0.0)
    photo_frame_width = Column(Float, nullable=False, default=1.0)
    photo_frame_height = Column(Float, nullable=False, default=1.0)
    # Admin-configured sample photo shown on template cards
    placeholder_image_url = Column(String)
    placeholder_scale = Column(Float)
    placeholder_x = Column(Float)
    placeholder_y = Column(Float)
    create_time = Column(DateTime, server_default=func.now())
    update_time = Column(DateTime, server_default=func.now(), onupdate=func.now())
