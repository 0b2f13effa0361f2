# docspace/schemas/document.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentCreate(BaseModel):
    workspace_id: UUID
    title: str = ""
    parent_id: UUID | None = None
    subspace_id: UUID | None = None
    index: int | None = None
    is_workspace_public: bool = False
    publish: bool = True


class NavigationNode(BaseModel):
    id: UUID
    title: str
    url: str
    children: list["NavigationNode"] = Field(default_factory=list)


class SharedDocument(BaseModel):
    id: UUID
    title: str
    workspace_id: UUID
    parent_id: UUID | None = None
    author_id: UUID
    shared_at: datetime | None = None

    class Config:
        from_attributes = True


class SharedDocumentPage(BaseModel):
    page: int
    limit: int
    total: int
    page_count: int
    documents: list[SharedDocument]


NavigationNode.model_rebuild()
