"""Workspace data model.

A workspace groups artifacts under one identity and may be linked to a git
repository.  Wire payloads use camelCase; the models accept either form.
"""

from __future__ import annotations

from pydantic import Field

from fabric_core.models.base import WireModel


class SourceControlInfo(WireModel):
    branch_name: str | None = None
    repository: str | None = None
    directory_name: str | None = None


class Workspace(WireModel):
    """Workspace as returned by ``/v1/workspaces``.  Identity is ``id``."""

    id: str
    display_name: str
    type: str = "Workspace"
    description: str = ""
    capacity_id: str | None = None
    source_control: SourceControlInfo | None = None


class WorkspaceFolder(WireModel):
    """Folder inside a workspace.  Folders nest through ``parent_folder_id``."""

    id: str
    display_name: str
    workspace_id: str
    parent_folder_id: str | None = None
    children: list[WorkspaceFolder] = Field(default_factory=list, exclude=True)


def build_folder_tree(folders: list[WorkspaceFolder]) -> list[WorkspaceFolder]:
    """Link folders to their parents and return the roots.

    Folders whose parent is not in ``folders`` are treated as roots.  The
    input models are copied, so callers' lists are left untouched.
    """
    nodes = {f.id: f.model_copy(update={"children": []}) for f in folders}
    roots: list[WorkspaceFolder] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_folder_id) if node.parent_folder_id else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots
