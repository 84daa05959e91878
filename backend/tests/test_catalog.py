from ieltsprep.catalog import (
	available_question_types,
	band_tier,
	book_section,
	filter_tests_by_types,
	gap_numbers,
	normalize_question_type,
	parts_for_test,
	word_bank_state,
)


def reading_test(test_id, number, groups, book="Cambridge 18"):
	return {
		"id": test_id,
		"title": f"Test {number}",
		"book_name": book,
		"test_number": number,
		"time_limit": 60,
		"total_questions": 40,
		"passages": [
			{"id": "p1", "passage_number": 1, "title": "Bees"},
			{"id": "p2", "passage_number": 2, "title": "Glass"},
		],
		"question_groups": groups,
	}


def group(question_type, start, end, passage_id="p1"):
	return {"question_type": question_type, "start_question": start, "end_question": end, "passage_id": passage_id}


def test_normalization():
	assert normalize_question_type("SUMMARY_WORD_BANK") == "FILL_IN_BLANK"
	assert normalize_question_type("MULTIPLE_CHOICE_SINGLE") == "MULTIPLE_CHOICE"
	assert normalize_question_type("MATCHING_HEADINGS") == "MATCHING_HEADINGS"


def test_available_types_are_normalized_and_sorted():
	tests = [
		reading_test("t1", 1, [group("NOTE_COMPLETION", 1, 5), group("TRUE_FALSE_NOT_GIVEN", 6, 13)]),
		reading_test("t2", 2, [group("SHORT_ANSWER", 1, 4)]),
	]
	assert available_question_types(tests) == ["FILL_IN_BLANK", "TRUE_FALSE_NOT_GIVEN"]


def test_filter_uses_normalized_types():
	tests = [
		reading_test("t1", 1, [group("NOTE_COMPLETION", 1, 5)]),
		reading_test("t2", 2, [group("MATCHING_HEADINGS", 1, 5)]),
	]
	assert [t["id"] for t in filter_tests_by_types(tests, ["FILL_IN_BLANK"])] == ["t1"]
	assert len(filter_tests_by_types(tests, [])) == 2


def test_reading_parts_follow_passages():
	test = reading_test("t1", 1, [
		group("NOTE_COMPLETION", 1, 6),
		group("TRUE_FALSE_NOT_GIVEN", 7, 13),
		group("MATCHING_HEADINGS", 14, 20, passage_id="p2"),
	])
	parts = parts_for_test(test, "reading")
	assert [(p["part_number"], p["question_count"]) for p in parts] == [(1, 13), (2, 7)]
	assert parts[0]["types"] == ["NOTE_COMPLETION", "TRUE_FALSE_NOT_GIVEN"]


def test_listening_parts_by_midpoint():
	test = {
		"question_groups": [
			{"question_type": "FORM_COMPLETION", "start_question": 1, "end_question": 10},
			{"question_type": "MULTIPLE_CHOICE", "start_question": 11, "end_question": 15},
			{"question_type": "MAP_LABELLING", "start_question": 16, "end_question": 20},
			{"question_type": "NOTE_COMPLETION", "start_question": 31, "end_question": 40},
		],
	}
	parts = parts_for_test(test, "listening")
	assert [(p["part_number"], p["question_count"]) for p in parts] == [(1, 10), (2, 10), (4, 10)]


def test_band_tiers():
	assert band_tier(7.5) == "high"
	assert band_tier(5.5) == "medium"
	assert band_tier(5.0) == "neutral"
	assert band_tier(None) == "neutral"


def test_book_section_rows_and_completion():
	tests = [
		reading_test("t2", 2, [group("MATCHING_HEADINGS", 1, 13)]),
		reading_test("t1", 1, [group("NOTE_COMPLETION", 1, 13)]),
	]
	scores = {"t1": {"overall": {"score": 30, "total_questions": 40, "band_score": 7.0}, "parts": {"1": 10}}}
	section = book_section("Cambridge 18", tests, "reading", [], scores)
	assert section["completed_count"] == 1
	assert section["test_count"] == 2
	first, second = section["tests"]
	assert first["id"] == "t1"
	assert first["action"] == "retry"
	assert first["band_tier"] == "high"
	assert first["part_scores"] == {"1": 10}
	assert second["action"] == "start"
	assert second["score"] is None


def test_book_section_empty_after_filter():
	tests = [reading_test("t1", 1, [group("MATCHING_HEADINGS", 1, 13)])]
	assert book_section("Cambridge 18", tests, "reading", ["FILL_IN_BLANK"]) is None


def test_word_bank_only_counts_this_groups_gaps():
	content = "Bees use {{21}} to find {{22}} nearby."
	bank = ["scent", "flowers", "water"]
	# question 30 belongs to another group
	answers = {21: "scent", 30: "water"}
	assert gap_numbers(content) == [21, 22]
	assert word_bank_state(content, bank, answers) == [
		{"word": "scent", "used": True},
		{"word": "flowers", "used": False},
		{"word": "water", "used": False},
	]
