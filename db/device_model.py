"""
device_model.py — Recording Unit ORM Models
-------------------------------------------

This module defines the SQLAlchemy ORM models for the recording hardware
managed by the dashboard.

Tables:
- `server`: Base stations with location, command mode, transfer status and connection flag
- `client`: Field recorders attached to a server
- `standalone`: Self-contained recorders that upload directly
- `scheduled_record`: Scheduled recordings keyed by ISO start time, owned by a client or standalone

Features:
- Server and standalone rows carry the command "mode" the hardware polls for
- Active status counters are written back by the hardware during transfers
- Deleting a unit cascades to its clients, scheduled records and predictions

Dependencies:
- SQLAlchemy ORM

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

from sqlalchemy import Column, Integer, Float, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Server(Base):
    """
    Table: server

    Stores a base station including:
    - Location (server_info)
    - Current command mode and its target client
    - Transfer progress reported by the hardware (active_status)
    - Connection flag

    Relationships:
    - One-to-many with Client
    """
    __tablename__ = "server"

    server_id = Column(Text, primary_key=True)

    clients = relationship("Client", back_populates="server", cascade="all, delete-orphan",
                           order_by="Client.client_id")

    server_lat = Column(Float, default=0.0)
    server_long = Column(Float, default=0.0)
    server_location_name = Column(Text, default="Not set")
    location_updated = Column(Boolean, default=False)

    mode_type = Column(Text, nullable=False, default="idle")
    mode_target_client_id = Column(Text, default="")
    mode_duration_sec = Column(Integer, default=0)
    mode_schedule_key = Column(Text, default="")
    mode_updated_at = Column(DateTime)

    status = Column(Text, default="idle")
    progress = Column(Integer, default=0)
    total_files = Column(Integer, default=0)
    received_files = Column(Integer, default=0)
    total_size_bytes = Column(Integer, default=0)
    transferred_bytes = Column(Integer, default=0)

    connection_status = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class Client(Base):
    """
    Table: client

    A field recorder. Client ids ("client1") are unique per server only.
    """
    __tablename__ = "client"
    __table_args__ = (UniqueConstraint("server_id", "client_id"),)

    client_pk = Column(Integer, primary_key=True)
    server_id = Column(Text, ForeignKey("server.server_id", ondelete="CASCADE"), nullable=False)
    client_id = Column(Text, nullable=False)

    server = relationship("Server", back_populates="clients")
    scheduled_records = relationship("ScheduledRecord", back_populates="client", cascade="all, delete-orphan")

    lat = Column(Float, default=0.0)
    long = Column(Float, default=0.0)
    location_name = Column(Text, default="Not set")
    location_updated = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class Standalone(Base):
    """
    Table: standalone

    A recorder with its own uplink. Same command model as a server, no target client
    and no per-file transfer counters.
    """
    __tablename__ = "standalone"

    standalone_id = Column(Text, primary_key=True)

    scheduled_records = relationship("ScheduledRecord", back_populates="standalone", cascade="all, delete-orphan")

    lat = Column(Float, default=0.0)
    long = Column(Float, default=0.0)
    location_name = Column(Text, default="Not set")
    location_updated = Column(Boolean, default=False)

    mode_type = Column(Text, nullable=False, default="idle")
    mode_duration_sec = Column(Integer, default=0)
    mode_schedule_key = Column(Text, default="")
    mode_updated_at = Column(DateTime)

    status = Column(Text, default="idle")
    progress = Column(Integer, default=0)
    total_files = Column(Integer, default=0)
    total_size_bytes = Column(Integer, default=0)

    connection_status = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class ScheduledRecord(Base):
    """
    Table: scheduled_record

    One scheduled recording, keyed by "YYYY-MM-DDTHH:MM:00".
    Status moves pending -> scheduled -> recording -> ready_to_transmit / ready_to_upload
    -> transmitting / uploading -> completed; the hardware writes most of these.
    """
    __tablename__ = "scheduled_record"
    __table_args__ = (
        UniqueConstraint("client_pk", "schedule_key"),
        UniqueConstraint("standalone_id", "schedule_key"),
        CheckConstraint("(client_pk IS NULL) <> (standalone_id IS NULL)", name="ck_record_single_owner"),
    )

    record_id = Column(Integer, primary_key=True)
    client_pk = Column(Integer, ForeignKey("client.client_pk", ondelete="CASCADE"))
    standalone_id = Column(Text, ForeignKey("standalone.standalone_id", ondelete="CASCADE"))

    client = relationship("Client", back_populates="scheduled_records")
    standalone = relationship("Standalone", back_populates="scheduled_records")

    schedule_key = Column(Text, nullable=False)
    duration_sec = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime, server_default=func.now())
