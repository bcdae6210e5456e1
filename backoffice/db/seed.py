"""Database seeding for the back office.

Creates the default approval workflows from a YAML file.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from sqlalchemy.orm import Session

from backoffice.core.approval.errors import WorkflowConfigurationError
from backoffice.core.approval.registry import DefinitionRegistry
from backoffice.core.approval.types import WorkflowDefinition
from backoffice.db.stores import SqlDefinitionStore

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOWS_FILE = Path(__file__).with_name("default_workflows.yaml")


def load_workflow_entries(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read workflow definitions from a YAML file.
    
    Raises:
        WorkflowConfigurationError: If the file is not a ``workflows`` list
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    
    workflows = data.get("workflows") if isinstance(data, dict) else None
    if not isinstance(workflows, list):
        raise WorkflowConfigurationError(f"{path}: expected a top-level 'workflows' list")
    return workflows


def seed_workflows(
    registry: DefinitionRegistry,
    entries: List[Dict[str, Any]],
) -> Dict[str, WorkflowDefinition]:
    """
    Create workflow definitions and their steps.
    
    Seeding is idempotent: a definition whose (entity_type, name) already
    exists is returned as-is and its steps are not touched.
    
    Args:
        registry: Definition registry to write through
        entries: Workflow entries as loaded by ``load_workflow_entries``
        
    Returns:
        Dict mapping workflow name to definition
    """
    seeded = {}
    
    for entry in entries:
        existing = next(
            (d for d in registry.list(entry["entity_type"]) if d.name == entry["name"]),
            None,
        )
        if existing:
            seeded[entry["name"]] = existing
            continue
        
        definition = registry.create(
            entry["name"],
            entry["entity_type"],
            entry["workflow_type"],
            description=entry.get("description"),
            is_default=bool(entry.get("is_default", False)),
            is_active=bool(entry.get("is_active", True)),
        )
        for order, step in enumerate(entry.get("steps") or [], start=1):
            registry.add_step(
                definition.id,
                step.get("step_order", order),
                step["approver_type"],
                step["approver_value"],
                is_optional=bool(step.get("is_optional", False)),
                auto_approve_after_hours=step.get("auto_approve_after_hours"),
            )
        seeded[entry["name"]] = definition
    
    return seeded


def seed_default_workflows(
    db: Session,
    path: Optional[Union[str, Path]] = None,
) -> Dict[str, WorkflowDefinition]:
    """
    Seed the default approval workflows into the database.
    
    Args:
        db: Database session (flushed, not committed)
        path: YAML file to load; the bundled defaults otherwise
    """
    path = path or DEFAULT_WORKFLOWS_FILE
    seeded = seed_workflows(DefinitionRegistry(SqlDefinitionStore(db)), load_workflow_entries(path))
    logger.info("Seeded %s approval workflows from %s", len(seeded), path)
    return seeded
