from __future__ import annotations

import re
import time
from typing import Callable, Dict, List, Optional, Sequence

DEFAULT_ESTIMATED_TIME = "15-30 seconds"
# The simulated bar never reaches the end before the call returns
MAX_PENDING_FRACTION = 0.95

_OUR_AI = re.compile(r"\b[Oo]ur AI is")


class LoadingProgress:
	"""Cosmetic progress for a pending AI call, driven by elapsed vs expected time."""

	def __init__(
		self,
		steps: Sequence[str],
		expected_seconds: float,
		*,
		title: str = "",
		description: str = "",
		estimated_time: str = DEFAULT_ESTIMATED_TIME,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		if not steps:
			raise ValueError("at least one progress step is required")
		self.steps: List[str] = list(steps)
		self.expected_seconds = max(0.001, float(expected_seconds))
		self.title = title
		self.description = description
		self.estimated_time = estimated_time
		self._clock = clock
		self._started_at = clock()
		self._finished_at: Optional[float] = None

	def elapsed(self) -> float:
		end = self._finished_at if self._finished_at is not None else self._clock()
		return max(0.0, end - self._started_at)

	@property
	def finished(self) -> bool:
		return self._finished_at is not None

	def finish(self) -> None:
		if self._finished_at is None:
			self._finished_at = self._clock()

	def fraction(self) -> float:
		if self.finished:
			return 1.0
		return min(MAX_PENDING_FRACTION, self.elapsed() / self.expected_seconds)

	def current_step_index(self) -> int:
		if self.finished:
			return len(self.steps)
		index = int(self.fraction() * len(self.steps))
		return min(index, len(self.steps) - 1)

	def step_states(self) -> List[Dict[str, str]]:
		current = self.current_step_index()
		states = []
		for index, step in enumerate(self.steps):
			if index < current:
				status = "completed"
			elif index == current:
				status = "active"
			else:
				status = "pending"
			states.append({"step": step, "status": status})
		return states

	def describe(self, description: Optional[str] = None) -> str:
		text = _OUR_AI.sub("AI is", description if description is not None else self.description)
		return f"{text} This usually takes {self.estimated_time}.".strip()

	def snapshot(self) -> Dict[str, object]:
		return {
			"title": self.title,
			"description": self.describe(),
			"steps": self.step_states(),
			"current_step_index": self.current_step_index(),
			"fraction": round(self.fraction(), 3),
			"elapsed_seconds": round(self.elapsed(), 1),
			"estimated_time": self.estimated_time,
			"finished": self.finished,
		}
