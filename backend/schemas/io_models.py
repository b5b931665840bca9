"""Pydantic models for the store data, chat messages and API I/O.

Serialized names are camelCase so a stored configuration matches what the
admin panel and widget exchange; Python attributes stay snake_case.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    price: str
    category: str = "Uncategorized"
    description: str
    stock_status: str = Field(alias="stockStatus")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    # columns that did not map to a canonical field, keyed by normalized header
    extra: Dict[str, str] = Field(default_factory=dict)


class DocumentType(str, Enum):
    text = "text"
    markdown = "markdown"


class KnowledgeDocument(BaseModel):
    id: str
    name: str
    content: str
    type: DocumentType = DocumentType.text


class StoreConfiguration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    store_name: str = Field(alias="storeName")
    policies: str = ""
    documents: List[KnowledgeDocument] = Field(default_factory=list)
    products: List[ProductRecord] = Field(default_factory=list)


class Role(str, Enum):
    user = "user"
    model = "model"


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: Role
    text: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    is_streaming: bool = Field(default=False, alias="isStreaming")


class ConfigStatus(BaseModel):
    configured: bool
    error: Optional[str] = None
    knowledge_mode: str
    model: str


class SessionCreateRequest(BaseModel):
    session_id: Optional[str] = None


class SessionCreateResponse(BaseModel):
    session_id: str
    created: bool
    messages: List[ChatMessage] = Field(default_factory=list)


class QueryRequest(BaseModel):
    session_id: str
    query: str


class QueryResponse(BaseModel):
    session_id: str
    response: str
    message: ChatMessage


class ProductUploadResponse(BaseModel):
    imported: int
    total: int
    mode: str


class EmbedCodeResponse(BaseModel):
    store_name: str
    code: str
