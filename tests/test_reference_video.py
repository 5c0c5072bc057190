from modules.reference_video import ReferenceVideo


class Clock:
	def __init__(self) -> None:
		self.t = 100.0

	def __call__(self) -> float:
		return self.t


def test_play_pause_tracks_position(reference_clip):
	clock = Clock()
	sent = []
	ref = ReferenceVideo(reference_clip, notify=sent.append, clock=clock)
	ref.play()
	clock.t += 2.5
	assert ref.position_s() == 2.5
	ref.pause()
	clock.t += 10
	assert ref.position_s() == 2.5
	assert [m["action"] for m in sent] == ["play", "pause"]
	assert sent[0]["type"] == "reference"


def test_stop_pauses_and_rewinds(reference_clip):
	clock = Clock()
	ref = ReferenceVideo(reference_clip, clock=clock)
	ref.play()
	clock.t += 4
	ref.stop()
	assert not ref.is_playing
	assert ref.position_s() == 0.0


def test_seek_while_playing_restarts_from_zero(reference_clip):
	clock = Clock()
	ref = ReferenceVideo(reference_clip, clock=clock)
	ref.play()
	clock.t += 3
	ref.seek_to_start()
	clock.t += 1
	assert ref.position_s() == 1.0


def test_missing_clip_is_unavailable(tmp_path):
	ref = ReferenceVideo(tmp_path / "nope.mp4")
	st = ref.get_status()
	assert st["available"] is False
	assert st["url"] is None
	assert ReferenceVideo().available is False


def test_notify_failure_does_not_break_transport(reference_clip):
	def boom(_msg):
		raise RuntimeError("socket gone")

	ref = ReferenceVideo(reference_clip, notify=boom)
	ref.play()
	assert ref.is_playing
