# docspace/dependencies/authz.py
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from docspace.core.database import get_db
from docspace.models.document import Document
from docspace.models.user import User
from docspace.schemas.permission import Action, DocumentContext
from docspace.services.exceptions import NotFoundError, PermissionDeniedError
from docspace.services.permission_resolution_service import ensure_can


def get_current_user(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the caller from the X-User-Id header set by the authenticating
    gateway in front of this service.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def require_document_action(action: Action):
    """
    Dependency factory for document-level access checks.

    Usage:

    @router.patch("/documents/{document_id}")
    def update_document(document: Document = Depends(require_document_action(Action.UPDATE))):
        ...

    Returns the document if the current user may perform action on it.
    A refusal is always a bare 403 "Forbidden", whatever grant is missing.
    """

    def dependency(
        document_id: UUID,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> Document:
        document = db.get(Document, document_id)
        if not document:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

        try:
            ensure_can(db, current_user.id, DocumentContext.model_validate(document), action)
        except PermissionDeniedError:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        except NotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

        return document

    return dependency
