from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Body
from pydantic import BaseModel

from ..errors import ConstraintError, StoreError, ValidationError
from ..logs import LogContext
from ..repository.email_repo import EPOCH, EmailEntry, to_dict
from ..services import email_svc

router = APIRouter()


class EmailCreate(BaseModel):
    email: str


class EmailUpdate(BaseModel):
    email: str
    confirmed_at: datetime = EPOCH
    opt_out: bool = False


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ConstraintError):
        return HTTPException(status_code=409, detail="already_subscribed")
    return HTTPException(status_code=500, detail=str(e))


@router.post("/email/create", status_code=201)
def api_email_create(body: EmailCreate):
    log = LogContext("EMAIL_CREATE")
    log.set_email(body.email)
    log.set_payload(body.model_dump())
    try:
        with log:
            email_svc.subscribe(body.email, log)
        return {"message": "ok"}
    except (ConstraintError, ValidationError, StoreError) as e:
        raise _http_error(e)


@router.get("/email/get")
def api_email_get(email: str):
    try:
        entry = email_svc.find(email)
    except (ValidationError, StoreError) as e:
        raise _http_error(e)
    if entry is None:
        raise HTTPException(status_code=404, detail="email_not_found")
    return to_dict(entry)


@router.post("/email/update")
def api_email_update(body: EmailUpdate):
    log = LogContext("EMAIL_UPSERT")
    log.set_email(body.email)
    log.set_payload(body.model_dump(mode="json"))
    try:
        with log:
            entry = email_svc.save(
                EmailEntry(id=None, email=body.email, confirmed_at=body.confirmed_at, opt_out=body.opt_out),
                log,
            )
        return to_dict(entry)
    except (ValidationError, StoreError) as e:
        raise _http_error(e)


@router.post("/email/delete")
def api_email_delete(email: str = Body(..., embed=True)):
    log = LogContext("EMAIL_OPT_OUT")
    log.set_email(email)
    try:
        with log:
            entry = email_svc.unsubscribe(email, log)
        return to_dict(entry) if entry else None
    except (ValidationError, StoreError) as e:
        raise _http_error(e)


@router.get("/email/get_batch")
def api_email_get_batch(page: int = 1, count: int | None = None):
    try:
        items = email_svc.list_active(page, count)
    except (ValidationError, StoreError) as e:
        raise _http_error(e)
    return {"items": [to_dict(e) for e in items]}
