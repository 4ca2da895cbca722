# repomirror/models/subscription.py
from sqlalchemy import Column, Integer, String
from repomirror.core.db import Base

class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    owner = Column(String, nullable=False, index=True)       # GitHub org or user login
    status = Column(String, nullable=False, default="active")  # active, past_due, canceled, ...
