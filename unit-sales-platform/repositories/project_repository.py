"""
Project and tower lookups (read-only).

Projects supply booking tax rates; towers supply floor-rise and view premium
rules. Both are maintained by inventory setup outside this core.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.project import Project, Tower
from repositories.client import check_response, get_supabase
from repositories.rows import row_to_project, row_to_tower

_PROJECTS_TABLE: str = "projects"
_TOWERS_TABLE: str = "towers"


class SupabaseProjectRepository:
    def __init__(self, client: Optional[Client] = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def get_project(self, project_id: UUID) -> Optional[Project]:
        response = (
            self.client.table(_PROJECTS_TABLE)
            .select("*")
            .eq("project_id", str(project_id))
            .limit(1)
            .execute()
        )
        rows = check_response(response, "get project")
        return row_to_project(rows[0]) if rows else None

    def get_tower(self, tower_id: UUID) -> Optional[Tower]:
        response = (
            self.client.table(_TOWERS_TABLE)
            .select("*")
            .eq("tower_id", str(tower_id))
            .limit(1)
            .execute()
        )
        rows = check_response(response, "get tower")
        return row_to_tower(rows[0]) if rows else None


__all__ = ["SupabaseProjectRepository"]
