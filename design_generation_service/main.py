# main.py

# --- Imports ---
import asyncio
import logging
import urllib.parse
import uuid

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import Response

from design_generation_service.assembler import PPTX_CONTENT_TYPE, DeckAssembler
from design_generation_service.models import ExportRequest
from shared.errors import AssemblyError
from shared.logging_config import configure_logging

# --- Configuration ---
configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Design & Generation Service (python-pptx)")

_assembler = DeckAssembler()


def get_assembler() -> DeckAssembler:
    return _assembler


def attachment_header(title: str) -> str:
    """Content-Disposition naming the file after the deck title, safe for non-ASCII titles."""
    title = title or "presentation"
    ascii_title = title.encode("ascii", "ignore").decode("ascii").replace('"', "").strip() or "presentation"
    filename = urllib.parse.quote(f"{title}.pptx", safe="")
    return f"attachment; filename=\"{ascii_title}.pptx\"; filename*=UTF-8''{filename}"


@app.get("/health")
async def health():
    return {"status": "ok"}


# --- Main Endpoint ---
@app.post("/export")
async def export_presentation(request: ExportRequest, assembler: DeckAssembler = Depends(get_assembler)):
    job_id = str(uuid.uuid4())
    if not request.slides:
        raise HTTPException(status_code=400, detail="Missing required field: slides")

    title = request.title.strip() or "Presentation"
    logger.info(f"[{job_id}] Creating PPTX with {len(request.slides)} slides for '{title}'.")

    try:
        pptx_bytes = await asyncio.to_thread(
            assembler.assemble,
            request.slides,
            title,
            template_style=request.template_style,
            theme=request.style_theme,
            job_id=job_id,
        )
    except AssemblyError as e:
        raise HTTPException(status_code=500, detail=f"Failed to export PPTX: {e}")

    logger.info(f"✅ [{job_id}] PPTX created successfully, size: {len(pptx_bytes)} bytes")
    return Response(
        content=pptx_bytes,
        media_type=PPTX_CONTENT_TYPE,
        headers={"Content-Disposition": attachment_header(title)},
    )


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8003)
