# src/libs/holdings-engine/holdings_engine/db_base.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()
