# docimport/models/document.py

import posixpath

from sqlalchemy import Index

from .base import BaseModel, db


def join_path(parent_path: str, name: str) -> str:
    """Join a parent path and a child name into a normalized absolute path."""
    parent = parent_path or "/"
    if not parent.startswith("/"):
        parent = "/" + parent
    return posixpath.normpath(posixpath.join(parent, name)).replace("//", "/")


class Document(BaseModel):
    """A typed document stored under a hierarchical path."""

    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    path = db.Column(db.String(1024), nullable=False, unique=True, index=True)
    parent_path = db.Column(db.String(1024), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    doc_type = db.Column(db.String(100), nullable=False, index=True)
    properties = db.Column(db.JSON, nullable=False, default=dict)

    __table_args__ = (Index("idx_documents_parent_type", "parent_path", "doc_type"),)

    def __repr__(self):
        return f"<Document {self.doc_type} {self.path}>"

    @property
    def title(self) -> str:
        """The dublincore title when set, the document name otherwise."""
        value = (self.properties or {}).get("dc:title")
        return value if value else self.name

    def get_property(self, key: str, default=None):
        return (self.properties or {}).get(key, default)
