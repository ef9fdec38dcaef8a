from __future__ import annotations

from fastapi import APIRouter, Depends

from ..repositories import Repository, get_repository
from ..schemas import SyncRequest, SyncResponse, TodoOut
from ..sync import reconcile

router = APIRouter(
    prefix="/api/v1/sync",
    tags=["sync"],
)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=SyncResponse,
    summary="Sync Todos",
    description=(
        "Push a batch of offline todo changes.\n\n"
        "Items without an id are created, items with an id are updated unless the "
        "server copy changed after the client's client_updated_at (returned in "
        "`conflicts` instead), and items flagged is_deleted are removed. The batch "
        "is all-or-nothing: an unknown user, category or todo rejects it entirely."
    ),
    responses={
        200: {"description": "Batch applied; see synced and conflicts"},
        404: {"description": "User, category or todo not found; nothing applied"},
    },
)
def sync_todos(payload: SyncRequest, repo: Repository = Depends(get_repository)) -> SyncResponse:
    """
    Reconcile a client batch against server state.
    """
    result = reconcile(repo, payload.user_id, payload.todos, payload.last_sync_timestamp)
    return SyncResponse(
        synced=[TodoOut(**t) for t in result.synced],  # type: ignore[arg-type]
        conflicts=[TodoOut(**t) for t in result.conflicts],  # type: ignore[arg-type]
    )
