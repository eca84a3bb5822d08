"""
prediction_model.py — Species Prediction ORM Model
--------------------------------------------------

Table:
- `prediction`: one ranked species guess for one recording file

Rows with a `folder_timestamp` belong to a recording folder
(folder -> bat number -> rank). Rows without one are legacy single-species
predictions keyed only by the bat id.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

from sqlalchemy import Column, Integer, Float, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship, backref
from sqlalchemy.sql import func
from db.device_model import Base


class Prediction(Base):
    """
    Table: prediction

    Stores a species guess including:
    - Owner (client or standalone)
    - Folder timestamp and bat number of the recording
    - Rank within the backend's species list, species name, confidence
    - Optional prediction date and peak frequency (legacy rows)
    """
    __tablename__ = "prediction"
    __table_args__ = (
        Index("ix_prediction_client_folder", "client_pk", "folder_timestamp"),
        Index("ix_prediction_standalone_folder", "standalone_id", "folder_timestamp"),
    )

    prediction_id = Column(Integer, primary_key=True)
    client_pk = Column(Integer, ForeignKey("client.client_pk", ondelete="CASCADE"))
    standalone_id = Column(Text, ForeignKey("standalone.standalone_id", ondelete="CASCADE"))

    client = relationship("Client", backref=backref("predictions", cascade="all, delete-orphan"))
    standalone = relationship("Standalone", backref=backref("predictions", cascade="all, delete-orphan"))

    folder_timestamp = Column(Text)
    bat_number = Column(Text, nullable=False)
    rank = Column(Integer, nullable=False, default=0)
    species = Column(Text, nullable=False)
    confidence = Column(Float, nullable=False)
    prediction_date = Column(Text)
    frequency = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
