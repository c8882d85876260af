from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel

class ChatSendRequest(BaseModel):
    """
    Body of the relay endpoint. Any role or user id the client adds is
    ignored; both are derived from the access token.
    """
    session_id: str
    message: str

class RelayResponse(BaseModel):
    success: bool
    data: Any = None

class MessageSegment(BaseModel):
    text: str
    citation_id: Optional[int] = None

class Citation(BaseModel):
    citation_id: int
    source_id: str
    source_title: str
    source_type: str
    chunk_lines_from: Optional[int] = None
    chunk_lines_to: Optional[int] = None
    chunk_index: Optional[int] = None
    excerpt: Optional[str] = None

class AiContent(BaseModel):
    segments: List[MessageSegment]
    citations: List[Citation]

class ChatMessageBody(BaseModel):
    type: str
    content: Union[AiContent, str]
    additional_kwargs: Optional[Dict[str, Any]] = None
    response_metadata: Optional[Dict[str, Any]] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    invalid_tool_calls: Optional[List[Dict[str, Any]]] = None

class ChatMessageOut(BaseModel):
    id: int
    session_id: str
    message: ChatMessageBody
