from sqlalchemy import create_engine, Column, String, Integer, BigInteger, LargeBinary, Boolean, DateTime, Index
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base
import logging
import datetime


LOGGER = logging.getLogger(__name__)


# ORM classes shared by the group store and the bundled directory.
Base = declarative_base()
class GroupRow(Base):
    __tablename__ = "groups"
    id = Column("_id", Integer, primary_key=True)
    group_id = Column(String, nullable=False)
    title = Column(String, nullable=True)
    members = Column(String, nullable=True)  # comma-joined member identifiers
    avatar = Column(LargeBinary, nullable=True)
    avatar_id = Column(BigInteger, nullable=True)
    avatar_key = Column(LargeBinary, nullable=True)
    avatar_content_type = Column(String, nullable=True)
    avatar_relay = Column(String, nullable=True)
    timestamp = Column(BigInteger, nullable=True)  # creation time, epoch millis
    active = Column(Boolean, nullable=False, default=True, server_default="1")
    __table_args__ = (Index('group_id_index', 'group_id', unique=True),)
class RecipientRow(Base):
    __tablename__ = "recipients"
    id = Column("_id", Integer, primary_key=True)
    recipient_key = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    avatar = Column(LargeBinary, nullable=True)  # PNG bytes of the display image
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)


class Metadata:

    def __init__(self, metadata_db_url):
        self.metadata_db_url = metadata_db_url
        self.engine = create_engine(self.metadata_db_url, echo=False)
        self.create_all()
        self.session = scoped_session(sessionmaker(bind=self.engine))
        LOGGER.info(f"Created Metadata instance using database engine: {self.metadata_db_url}")

    def create_all(self):
        return Base.metadata.create_all(self.engine)

    def drop_and_recreate_all(self):
        """Drop all tables and recreate them. Use with caution - this deletes all data!"""
        LOGGER.warning("Dropping all tables and recreating schema. All data will be lost!")
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)
        LOGGER.info("Schema recreated successfully")

    def get_db_session(self) -> scoped_session:
        if not self.engine:
            self.engine = create_engine(self.metadata_db_url, echo=False)
            self.create_all()
            self.session = scoped_session(sessionmaker(bind=self.engine))
            LOGGER.info(f"Re-created Metadata instance using database engine: {self.metadata_db_url}")
        return self.session()

    def close_db_engine(self):
        if self.engine:
            self.session.remove()
            self.engine.dispose()
            self.engine = None
            LOGGER.info(f"Closed database engine")

    def close(self) -> None:
        self.close_db_engine()
