"""Camera preview routes. Routes: /video/status, /video/mjpeg, /video/snapshot.jpg, /debug/status."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response, StreamingResponse

from app_state import AppState
from deps import get_state
from schemas.responses import DebugStatusResponse

router = APIRouter(tags=["video"])


@router.get("/video/status")
async def video_status(state: AppState = Depends(get_state)):
	return state.video.get_status()


@router.get("/video/mjpeg")
async def video_mjpeg(fps: float = 15.0, state: AppState = Depends(get_state)):
	"""Live MJPEG stream from the camera (only produces frames while a session holds the camera)."""
	return StreamingResponse(
		state.video.mjpeg_stream(fps=float(fps)),
		media_type="multipart/x-mixed-replace; boundary=frame",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
			"Connection": "keep-alive",
		},
	)


@router.get("/video/snapshot.jpg")
async def video_snapshot(state: AppState = Depends(get_state)):
	"""Return a single latest JPEG frame."""
	jpeg = await state.video.snapshot_jpeg()
	if jpeg is None:
		raise HTTPException(status_code=404, detail="No JPEG frame available yet")
	return Response(
		content=jpeg,
		media_type="image/jpeg",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
		},
	)


@router.get("/debug/status", response_model=DebugStatusResponse)
async def debug_status(state: AppState = Depends(get_state)):
	"""Motion-loop counters plus camera status, for diagnosing a silent score."""
	motion = dict(state.motion.dbg)
	motion["phase"] = state.motion.phase.value
	motion["generation"] = state.motion.generation
	return {
		"motion": motion,
		"camera": state.video.get_status(),
		"clients": state.manager.count() if state.manager is not None else 0,
	}
