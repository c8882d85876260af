from typing import Any, Dict, List, Optional
from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime

class SourceResponse(BaseModel):
    id: str
    notebook_id: str
    title: str
    type: str
    url: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    summary: Optional[str] = None
    processing_status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias=AliasChoices("source_metadata", "metadata"))
    visibility_scope: Optional[str] = None
    target_role: Optional[str] = None
    uploaded_by_user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TextSourceCreate(BaseModel):
    title: str
    content: str
    notebook_id: Optional[str] = None
    document_title: Optional[str] = None
    target_role: Optional[str] = None

class WebsiteSourcesCreate(BaseModel):
    urls: List[str]
    notebook_id: Optional[str] = None
    document_title: Optional[str] = None
    target_role: Optional[str] = None

class SourceBatchResponse(BaseModel):
    notebook_id: str
    sources: List[SourceResponse]

class ContentLine(BaseModel):
    line_number: int
    content: str
    type: str
    level: Optional[int] = None
    is_highlighted: bool = False

class ContentTable(BaseModel):
    start_line: int
    end_line: int
    headers: List[str]
    rows: List[List[str]]

class SourceContentResponse(BaseModel):
    source_id: str
    title: str
    content_type: str
    has_structured_content: bool
    lines: List[ContentLine]
    tables: List[ContentTable]
    plain_text: str
