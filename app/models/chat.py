from sqlalchemy import Column, String, Integer, JSON
from app.core.database import Base

class ChatHistory(Base):
    """
    Chat turns written by the external chat workflow's memory node.
    session_id is the policy document id; message is {type, content, ...}.
    """
    __tablename__ = "n8n_chat_histories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, index=True, nullable=False)
    message = Column(JSON, nullable=False)
