# repomirror/models/user.py
from sqlalchemy import Column, Integer, String
from repomirror.core.db import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # set only when the account is linked to a GitHub identity
    github_id = Column(Integer, unique=True, index=True, nullable=True)
    github_login = Column(String, unique=True, index=True, nullable=True)
    name = Column(String, nullable=True)
