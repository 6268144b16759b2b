from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud.clients import create_client, get_client, list_clients
from ..crud.common import Actor
from ..db.session import get_db
from ..deps.auth import get_current_actor
from ..schemas.client import ClientCreate, ClientOut

router = APIRouter(prefix="/api/v1/clients", tags=["clients"])


def _client_out(client, project_count: int = 0) -> ClientOut:
    return ClientOut.model_validate(client, from_attributes=True).model_copy(update={"project_count": project_count})


@router.get("", response_model=list[ClientOut])
def api_list_clients(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return [_client_out(client, count) for client, count in list_clients(db, actor.org_id)]


@router.post("", response_model=ClientOut, status_code=201)
def api_create_client(payload: ClientCreate, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    client = create_client(db, actor, payload.model_dump(exclude_unset=True))
    return _client_out(client)


@router.get("/{client_id}", response_model=ClientOut)
def api_get_client(client_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    client = get_client(db, actor, client_id)
    return _client_out(client, len(client.projects))
