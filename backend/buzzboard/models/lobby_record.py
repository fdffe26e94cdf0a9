"""
Lobby record model for the SQL lobby store.

One row per live lobby, holding the serialized lobby document. The
version column mirrors the document's version so conditional writes can
be expressed as a single UPDATE ... WHERE version = ?.
"""

from sqlalchemy import Column, Integer, String, Text, BigInteger

from buzzboard.database import Base


class LobbyRecord(Base):
    """
    Stored lobby document.

    Attributes:
        key: Store key, "lobby:{CODE}"
        payload: Lobby JSON document
        version: Lobby version at last write
        expires_at: Expiry deadline in epoch milliseconds (sliding TTL)
    """
    __tablename__ = "lobby_records"

    key = Column(String(32), primary_key=True)
    payload = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    expires_at = Column(BigInteger, nullable=False, index=True)

    def __repr__(self):
        return f"<LobbyRecord(key='{self.key}', version={self.version})>"
