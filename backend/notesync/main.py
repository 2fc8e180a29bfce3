from fastapi import FastAPI

from notesync.api import auth, notes
from notesync.utils.log import setup_logging

setup_logging()

app = FastAPI(title="Note Sync API")
app.include_router(auth.router)
app.include_router(notes.router)


@app.get("/health")
def health():
    return {"ok": True}
