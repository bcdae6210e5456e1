from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from backoffice.core.approval import WorkflowEngine
from backoffice.db.session import SessionLocal
from backoffice.services.workflows import build_workflow_engine

ADMIN_ACTOR_TYPES = {"admin", "system"}


@dataclass
class Actor:
    """Caller identity forwarded by the authentication layer."""
    email: str
    actor_type: str = "user"
    
    @property
    def is_admin(self) -> bool:
        return self.actor_type in ADMIN_ACTOR_TYPES


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_actor(
    x_actor_email: Optional[str] = Header(None),
    x_actor_type: str = Header("user"),
) -> Actor:
    """Read the authenticated actor from the X-Actor-* headers."""
    if not x_actor_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Email header",
        )
    return Actor(email=x_actor_email.strip(), actor_type=x_actor_type.strip().lower())


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return actor


def get_workflow_engine(db: Session = Depends(get_db)) -> WorkflowEngine:
    """Workflow engine bound to the request's database session."""
    return build_workflow_engine(db)
