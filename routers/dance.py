"""Dance challenge routes. Routes: /dance/start, pause, resume, toggle, reset, status, overlay.png, reference."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, Response

from app_state import AppState
from deps import get_state
from modules.motion_loop import AcquisitionError
from schemas.responses import DanceActionResponse, DanceStatusResponse

router = APIRouter(tags=["dance"])

_NO_CACHE = {
	"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
	"Pragma": "no-cache",
}


def _action(state: AppState, detail: str) -> dict:
	return {"detail": detail, "status": state.motion.get_status()}


@router.post("/dance/start", response_model=DanceActionResponse)
async def dance_start(state: AppState = Depends(get_state)):
	"""Acquire camera + pose estimator, reset the score and start the tick loop."""
	try:
		await state.motion.start()
	except AcquisitionError as e:
		# Session stays in STARTING with the error shown; the user re-triggers start.
		raise HTTPException(status_code=503, detail=f"{e.feedback} ({e.message})")
	return _action(state, "Dance session started.")


@router.post("/dance/pause", response_model=DanceActionResponse)
async def dance_pause(state: AppState = Depends(get_state)):
	"""Pause the reference clip. Scoring continues."""
	if not state.motion.pause():
		raise HTTPException(status_code=409, detail=f"Cannot pause while {state.motion.phase.value}")
	return _action(state, "Reference video paused.")


@router.post("/dance/resume", response_model=DanceActionResponse)
async def dance_resume(state: AppState = Depends(get_state)):
	if not state.motion.resume():
		raise HTTPException(status_code=409, detail=f"Cannot resume while {state.motion.phase.value}")
	return _action(state, "Reference video playing.")


@router.post("/dance/toggle", response_model=DanceActionResponse)
async def dance_toggle(state: AppState = Depends(get_state)):
	"""Play/pause button: RUNNING <-> PAUSED."""
	if not state.motion.toggle_pause():
		raise HTTPException(status_code=409, detail=f"Cannot toggle playback while {state.motion.phase.value}")
	return _action(state, f"Session {state.motion.phase.value}.")


@router.post("/dance/reset", response_model=DanceActionResponse)
async def dance_reset(state: AppState = Depends(get_state)):
	"""Stop scoring, release the camera, zero the score and rewind the reference clip."""
	await state.motion.reset()
	return _action(state, "Dance session reset.")


@router.get("/dance/status", response_model=DanceStatusResponse)
async def dance_status(state: AppState = Depends(get_state)):
	return state.motion.get_status()


@router.get("/dance/overlay.png")
async def dance_overlay(state: AppState = Depends(get_state)):
	"""Latest keypoint overlay as a transparent PNG sized to the camera frame."""
	if state.surface is None:
		raise HTTPException(status_code=404, detail="Overlay not available")
	return Response(content=state.surface.to_png(), media_type="image/png", headers=_NO_CACHE)


@router.get("/dance/reference")
async def dance_reference(state: AppState = Depends(get_state)):
	"""Reference dance clip played by the browser."""
	ref = state.reference
	if ref is None or not ref.available:
		raise HTTPException(status_code=404, detail="Reference video not found")
	return FileResponse(str(ref.path), media_type="video/mp4")
