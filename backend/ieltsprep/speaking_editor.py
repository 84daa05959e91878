"""
Ordering rules shared by the speaking part editors.

Questions of one part are kept in display order: ``order_index`` is
0-based and ``question_number`` is 1-based, both contiguous. Every
removal or move renumbers the whole part.
"""

from __future__ import annotations

from typing import Dict, List, Sequence, TypeVar

# Bounds enforced by the admin editors (seconds)
PART1_QUESTION_TIME = (10, 60)
PART3_QUESTION_TIME = (30, 90)
PART3_TOTAL_TIME = (180, 420)
PART2_PREPARATION_CHOICES = (45, 60, 75)
PART2_SPEAKING_CHOICES = (90, 120, 150, 180)

T = TypeVar("T")


class EditorError(ValueError):
	pass


def renumber(questions: Sequence[T]) -> List[T]:
	"""Rewrite order_index/question_number in place for the given order."""
	for index, question in enumerate(questions):
		question.order_index = index
		question.question_number = index + 1
	return list(questions)


def move(questions: Sequence[T], from_index: int, to_index: int) -> List[T]:
	items = list(questions)
	if not (0 <= from_index < len(items)) or not (0 <= to_index < len(items)):
		raise EditorError("question index out of range")
	moved = items.pop(from_index)
	items.insert(to_index, moved)
	return renumber(items)


def remove(questions: Sequence[T], index: int) -> List[T]:
	items = list(questions)
	if not (0 <= index < len(items)):
		raise EditorError("question index out of range")
	items.pop(index)
	return renumber(items)


def check_range(name: str, value: int, bounds: tuple[int, int]) -> int:
	low, high = bounds
	if value < low or value > high:
		raise EditorError(f"{name} must be between {low} and {high} seconds")
	return value


def check_min_required(value: int, question_count: int) -> int:
	if value < 0 or value > question_count:
		raise EditorError(f"minimum required questions must be between 0 and {question_count}")
	return value


def part_totals(questions: Sequence) -> Dict[str, int]:
	total = sum(q.time_limit_seconds for q in questions)
	required = sum(1 for q in questions if q.is_required)
	return {
		"question_count": len(questions),
		"total_seconds": total,
		"total_minutes": total // 60,
		"remainder_seconds": total % 60,
		"required_count": required,
		"optional_count": len(questions) - required,
	}
