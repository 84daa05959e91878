from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

# Admin panel question types collapse the completion variants together
QUESTION_TYPE_ALIASES: Dict[str, str] = {
	"NOTE_COMPLETION": "FILL_IN_BLANK",
	"SENTENCE_COMPLETION": "FILL_IN_BLANK",
	"SUMMARY_COMPLETION": "FILL_IN_BLANK",
	"SUMMARY_WORD_BANK": "FILL_IN_BLANK",
	"SHORT_ANSWER": "FILL_IN_BLANK",
	"MULTIPLE_CHOICE_SINGLE": "MULTIPLE_CHOICE",
}

LISTENING_PARTS = 4
LISTENING_QUESTIONS_PER_PART = 10

_GAP = re.compile(r"\{\{(\d+)\}\}")


def normalize_question_type(question_type: str) -> str:
	return QUESTION_TYPE_ALIASES.get(question_type, question_type)


def available_question_types(tests: Iterable[Mapping[str, Any]]) -> List[str]:
	types: Set[str] = set()
	for test in tests:
		for group in test.get("question_groups") or []:
			types.add(normalize_question_type(group["question_type"]))
	return sorted(types)


def filter_tests_by_types(tests: Sequence[Mapping[str, Any]], selected_types: Sequence[str]) -> List[Mapping[str, Any]]:
	if not selected_types:
		return list(tests)
	wanted = set(selected_types)
	return [
		t for t in tests
		if any(normalize_question_type(g["question_type"]) in wanted for g in (t.get("question_groups") or []))
	]


def group_by_book(tests: Iterable[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
	grouped: Dict[str, List[Mapping[str, Any]]] = {}
	for test in tests:
		grouped.setdefault(test["book_name"], []).append(test)
	return grouped


def _question_count(groups: Iterable[Mapping[str, Any]]) -> int:
	return sum(g["end_question"] - g["start_question"] + 1 for g in groups)


def _distinct_types(groups: Iterable[Mapping[str, Any]]) -> List[str]:
	seen: List[str] = []
	for g in groups:
		if g["question_type"] not in seen:
			seen.append(g["question_type"])
	return seen


def parts_for_test(test: Mapping[str, Any], test_type: str) -> List[Dict[str, Any]]:
	"""Per-part question counts and types for a test row.

	Reading parts are passages. Listening parts are the four blocks of ten
	questions; a group belongs to the block holding its midpoint.
	"""
	groups = test.get("question_groups") or []
	if test_type == "reading" and test.get("passages"):
		parts = []
		for passage in test["passages"]:
			passage_groups = [g for g in groups if g.get("passage_id") == passage["id"]]
			parts.append({
				"part_number": passage["passage_number"],
				"title": passage.get("title"),
				"question_count": _question_count(passage_groups),
				"types": _distinct_types(passage_groups),
				"passage_id": passage["id"],
			})
		return parts

	parts = []
	for part in range(1, LISTENING_PARTS + 1):
		part_groups = [
			g for g in groups
			if math.ceil((g["start_question"] + g["end_question"]) / 2 / LISTENING_QUESTIONS_PER_PART) == part
		]
		if part_groups:
			parts.append({
				"part_number": part,
				"question_count": _question_count(part_groups),
				"types": _distinct_types(part_groups),
			})
	return parts


def band_tier(band_score: Optional[float]) -> str:
	if band_score is not None and band_score >= 7:
		return "high"
	if band_score is not None and band_score >= 5.5:
		return "medium"
	return "neutral"


def book_section(
	book_name: str,
	tests: Sequence[Mapping[str, Any]],
	test_type: str,
	selected_types: Sequence[str] = (),
	user_scores: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Optional[Dict[str, Any]]:
	"""Build one book block of the test list; None when the filter leaves nothing."""
	user_scores = user_scores or {}
	filtered = filter_tests_by_types(tests, selected_types)
	if not filtered:
		return None
	ordered = sorted(filtered, key=lambda t: t["test_number"])
	rows = []
	completed = 0
	for test in ordered:
		score = user_scores.get(test["id"]) or {}
		overall = score.get("overall")
		if overall:
			completed += 1
		parts = parts_for_test(test, test_type)
		unique_types: List[str] = []
		for part in parts:
			for t in part["types"]:
				if t not in unique_types:
					unique_types.append(t)
		rows.append({
			"id": test["id"],
			"title": test["title"],
			"test_number": test["test_number"],
			"time_limit": test["time_limit"],
			"total_questions": test["total_questions"],
			"parts": parts,
			"question_types": unique_types,
			"score": overall,
			"part_scores": score.get("parts") or {},
			"band_tier": band_tier(overall.get("band_score")) if overall else None,
			"action": "retry" if overall else "start",
		})
	return {
		"book_name": book_name,
		"test_count": len(rows),
		"completed_count": completed,
		"tests": rows,
	}


# Summary word bank

def gap_numbers(content: str) -> List[int]:
	return [int(n) for n in _GAP.findall(content or "")]


def used_words(content: str, answers: Mapping[int, str]) -> Set[str]:
	"""Words already placed in this group's gaps.

	Answers to question numbers outside the group's content are ignored so a
	word chosen in another group stays available here.
	"""
	used: Set[str] = set()
	for number in gap_numbers(content):
		answer = answers.get(number)
		if answer:
			used.add(answer)
	return used


def word_bank_state(content: str, word_bank: Sequence[str], answers: Mapping[int, str]) -> List[Dict[str, Any]]:
	used = used_words(content, answers)
	return [{"word": w, "used": w in used} for w in word_bank]
