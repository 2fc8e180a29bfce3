from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from notesync import config
from notesync.models.auth import Credentials, RegisterOut, TokenResponse
from notesync.storage.users_store import UsersStore
from notesync.utils.auth_hash import hash_password, verify_password
from notesync.utils.jwt_auth import create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])

DATA_DIR = config.data_dir()
users = UsersStore(DATA_DIR)


@router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
def register(req: Credentials) -> RegisterOut:
    if users.get(req.user_id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User exists")

    try:
        users.create(req.user_id, hash_password(req.password))
    except FileExistsError:
        # lost a race with a concurrent registration
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User exists")
    return RegisterOut(user_id=req.user_id)


@router.post("/login", response_model=TokenResponse)
def login(req: Credentials) -> TokenResponse:
    rec = users.get(req.user_id)
    # same answer for unknown user and wrong password
    if rec is None or not verify_password(req.password, rec.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    minutes = config.jwt_exp_minutes()
    return TokenResponse(access_token=create_access_token(subject=req.user_id), expires_in=minutes * 60)
