import pytest

from ieltsprep.loading import LoadingProgress


class FakeClock:
	def __init__(self):
		self.now = 100.0

	def __call__(self):
		return self.now


STEPS = ["Collecting", "Analyzing", "Writing"]


def make(expected=30.0, **kwargs):
	clock = FakeClock()
	return LoadingProgress(STEPS, expected, clock=clock, **kwargs), clock


def test_starts_on_first_step():
	progress, _ = make()
	assert progress.fraction() == 0.0
	assert progress.current_step_index() == 0
	assert [s["status"] for s in progress.step_states()] == ["active", "pending", "pending"]


def test_advances_with_elapsed_time():
	progress, clock = make()
	clock.now += 15
	assert progress.fraction() == pytest.approx(0.5)
	assert progress.current_step_index() == 1
	assert [s["status"] for s in progress.step_states()] == ["completed", "active", "pending"]


def test_capped_until_finished():
	progress, clock = make()
	clock.now += 600
	assert progress.fraction() == 0.95
	assert progress.current_step_index() == 2
	progress.finish()
	assert progress.fraction() == 1.0
	assert progress.current_step_index() == 3
	assert all(s["status"] == "completed" for s in progress.step_states())


def test_elapsed_freezes_on_finish():
	progress, clock = make()
	clock.now += 5
	progress.finish()
	clock.now += 50
	assert progress.elapsed() == pytest.approx(5)


def test_description_wording():
	progress, _ = make(description="Our AI is reading your essay.")
	assert progress.describe() == "AI is reading your essay. This usually takes 15-30 seconds."
	assert progress.describe("Meanwhile our AI is thinking.") == "Meanwhile AI is thinking. This usually takes 15-30 seconds."


def test_custom_estimate_in_snapshot():
	progress, _ = make(title="Analyzing", estimated_time="about a minute")
	snap = progress.snapshot()
	assert snap["title"] == "Analyzing"
	assert snap["description"].endswith("This usually takes about a minute.")
	assert snap["finished"] is False


def test_requires_steps():
	with pytest.raises(ValueError):
		LoadingProgress([], 10)
