from fastapi import APIRouter

from cart_engine.domain.schemas import SessionIn
from cart_engine.tasks.migrate import migrate_guest_cart_task

router = APIRouter(prefix="/session", tags=["session"])


@router.post("/authenticated", status_code=202)
def authenticated(payload: SessionIn):
    """
    Przejscie gosc -> uzytkownik.
    Migracja koszyka idzie w tle, klient odswiezy koszyk po powiadomieniu o zmianie.
    """
    result = migrate_guest_cart_task.delay(payload.session_token, payload.user_id)
    return {"status": "queued", "task_id": result.id}
