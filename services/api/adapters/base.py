"""
Remote store interface for the Observation Tracker.
Defines the contract that every remote backend must implement.
"""

from typing import Protocol, List, Dict, Any, Optional


class RemoteStoreError(Exception):
    """
    Raised by remote store adapters when the backend rejects a call or is
    unreachable. `status_code` mirrors the backend's HTTP status when there
    is one (502 for transport failures).
    """

    def __init__(self, detail: str, status_code: int = 502):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class RemoteStore(Protocol):
    """
    Protocol defining the interface for all remote stores.

    This allows swapping between the REST backend and local SQLite
    without changing the sync engine or router code.

    NOTE:
    - Every method is a coroutine; callers treat each call as a suspension point.
    - `upsert_rows` is all-or-nothing: either every row in the call is
      applied or none is.
    """

    # ========== Entries ==========

    async def select_rows(self, project_id: str) -> List[Dict[str, Any]]:
        """
        Return all entries of a project as dictionaries,
        ordered by created_at descending.
        """
        ...

    async def upsert_rows(self, rows: List[Dict[str, Any]], on_conflict: str = "id") -> None:
        """
        Insert or update entries in one batch.

        Args:
            rows: entries in the upsert shape (see models.converters.row_to_remote)
            on_conflict: conflict key; rows whose key already exists are
                updated in place (created_at is preserved), others inserted.

        Raises:
            RemoteStoreError if any row is rejected (nothing is applied).
        """
        ...

    async def delete_row(self, row_id: str) -> None:
        """
        Delete a single entry. Deleting a missing entry is not an error.
        """
        ...

    # ========== Blobs ==========

    async def upload_blob(self, data: bytes, path: str, content_type: Optional[str] = None) -> str:
        """
        Store a binary object under `path` and return its public URL.

        Each upload is independent; a failure affects only that file.
        """
        ...

    # ========== Projects ==========

    async def create_project(self, name: str, description: str, password_hash: str) -> Dict[str, Any]:
        """
        Create a project and return the stored row (with id + timestamps).
        """
        ...

    async def list_projects(self) -> List[Dict[str, Any]]:
        """
        List projects ordered by created_at descending.
        """
        ...

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a project row by id, or None if not found.
        """
        ...

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overwrite the provided keys on a project and bump updated_at.

        Raises:
            RemoteStoreError(404) if the project does not exist.
        """
        ...

    async def delete_project(self, project_id: str) -> None:
        """
        Delete a project and all of its entries.
        """
        ...

    # ========== Lifecycle ==========

    async def ping(self) -> None:
        """
        Cheap connectivity check used by /readyz.
        """
        ...

    async def aclose(self) -> None:
        ...
