"""
Explicit app state – single source of truth for runtime lifecycle.
Created in lifespan, attached to app.state.state; injected into routes via Depends(get_state).
"""
from pathlib import Path
from typing import Any, Callable, Optional


class AppState:
	"""
	Holds all runtime state for the app. Populated in server lifespan.
	"""
	# WebSocket and UI (set at app load)
	manager: Any = None
	get_page_html: Optional[Callable[[str], str]] = None
	UI_DIR: Optional[Path] = None

	# Config
	cfg: Any = None

	# Collaborators (set in lifespan)
	video: Any = None
	estimator: Any = None
	reference: Any = None
	overlay: Any = None
	surface: Any = None
	motion: Any = None

	# Helpers (callables set in server after creation)
	publish: Any = None
	log_to_clients: Any = None
