# backend/convozo/routes/connect.py

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from convozo.routes.deps import get_connect_service

router = APIRouter(tags=["connect"])


@router.post("/create-connect-account")
def create_connect_account(payload: Dict[str, Any] = Body(...), service=Depends(get_connect_service)):
    return service.provision(payload)


@router.post("/verify-connect-account")
def verify_connect_account(payload: Dict[str, Any] = Body(...), service=Depends(get_connect_service)):
    return service.verify(payload)
