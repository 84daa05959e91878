from types import SimpleNamespace

import pytest

from ieltsprep.speaking_editor import (
	PART1_QUESTION_TIME,
	PART3_TOTAL_TIME,
	EditorError,
	check_min_required,
	check_range,
	move,
	part_totals,
	remove,
)


def questions(n, seconds=30):
	return [
		SimpleNamespace(question_text=f"Q{i}", order_index=i, question_number=i + 1, time_limit_seconds=seconds, is_required=True)
		for i in range(n)
	]


def test_move_renumbers():
	qs = questions(3)
	moved = move(qs, 0, 2)
	assert [q.question_text for q in moved] == ["Q1", "Q2", "Q0"]
	assert [q.order_index for q in moved] == [0, 1, 2]
	assert [q.question_number for q in moved] == [1, 2, 3]


def test_remove_renumbers():
	remaining = remove(questions(3), 1)
	assert [(q.question_text, q.question_number) for q in remaining] == [("Q0", 1), ("Q2", 2)]


@pytest.mark.parametrize("op", [lambda qs: move(qs, 0, 5), lambda qs: remove(qs, 3)])
def test_index_out_of_range(op):
	with pytest.raises(EditorError):
		op(questions(3))


def test_ranges():
	assert check_range("t", 10, PART1_QUESTION_TIME) == 10
	assert check_range("t", 420, PART3_TOTAL_TIME) == 420
	with pytest.raises(EditorError):
		check_range("t", 61, PART1_QUESTION_TIME)
	with pytest.raises(EditorError):
		check_range("t", 179, PART3_TOTAL_TIME)


def test_min_required_bounded_by_question_count():
	assert check_min_required(0, 0) == 0
	assert check_min_required(2, 2) == 2
	with pytest.raises(EditorError):
		check_min_required(3, 2)


def test_totals():
	qs = questions(3, seconds=45)
	qs[2].is_required = False
	assert part_totals(qs) == {
		"question_count": 3,
		"total_seconds": 135,
		"total_minutes": 2,
		"remainder_seconds": 15,
		"required_count": 2,
		"optional_count": 1,
	}
