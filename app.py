"""
Local stand-in for the proxied character API.

Serves the same routes the load driver hits so a run can be tried without
the real proxy:
1. /health liveness probe
2. /api/character/{id} JSON payload
3. /api/character/avatar/{id}.jpeg image payload
Responses carry an X-Cache header (MISS first, HIT after).
"""

import logging
import os

import uvicorn
from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel

from middleware import CacheStatusMiddleware, SeenPaths

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)

CHARACTER_COUNT = int(os.getenv("CHARACTER_COUNT", "826"))

# Smallest well-formed JPEG markers: SOI, APP0/JFIF header, EOI
AVATAR_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    b"\xff\xd9"
)

app = FastAPI(title="Character API stand-in")

seen_paths = SeenPaths()
app.add_middleware(CacheStatusMiddleware, seen=seen_paths)


class Character(BaseModel):
    """Character payload"""
    id: int
    name: str
    image: str
    url: str


def _require_known(character_id: int):
    if not 1 <= character_id <= CHARACTER_COUNT:
        raise HTTPException(status_code=404, detail="Character not found")


@app.get("/health")
async def health():
    return {"status": "ok", "characters": CHARACTER_COUNT}


@app.get("/api/character/avatar/{character_id}.jpeg")
async def get_avatar(character_id: int):
    """Avatar image for one character"""
    _require_known(character_id)
    return Response(content=AVATAR_BYTES, media_type="image/jpeg")


@app.get("/api/character/{character_id}", response_model=Character)
async def get_character(character_id: int):
    """One character as JSON"""
    _require_known(character_id)
    return Character(
        id=character_id,
        name=f"Character {character_id}",
        image=f"/api/character/avatar/{character_id}.jpeg",
        url=f"/api/character/{character_id}",
    )


@app.post("/purge")
async def purge():
    """Forget every served path so the next requests report MISS again"""
    count = seen_paths.clear()
    logging.info(f"Purged {count} cached paths")
    return {"message": f"Purged {count} paths"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8889")), log_level="info")
