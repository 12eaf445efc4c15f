"""
Unit tests for rating aggregation and review validation.
"""

import random

import pytest

from src.shared.errors import DuplicateReviewError, InvalidRatingError
from src.shared.ratings import RatingAggregator, is_valid_rating


class TestSummarize:
    """Test cases for RatingAggregator.summarize."""

    def test_empty_reviews(self):
        summary = RatingAggregator.summarize([])

        assert summary.average == 0.0
        assert summary.total == 0
        assert summary.histogram == [0, 0, 0, 0, 0]
        assert summary.percentages == [0.0, 0.0, 0.0, 0.0, 0.0]
        assert summary.skipped == 0

    def test_five_and_one_star(self):
        summary = RatingAggregator.summarize([
            {"user_id": 1, "rating": 5},
            {"user_id": 2, "rating": 1}
        ])

        assert summary.average == 3.0
        assert summary.total == 2
        assert summary.histogram == [1, 0, 0, 0, 1]
        assert summary.percentages == [50.0, 0.0, 0.0, 0.0, 50.0]

    def test_histogram_is_ordered_five_to_one(self):
        reviews = [{"user_id": i, "rating": rating} for i, rating in enumerate([5, 4, 4, 3, 3, 3, 2, 1])]

        summary = RatingAggregator.summarize(reviews)

        assert summary.histogram == [1, 2, 3, 1, 1]
        assert summary.average == pytest.approx(25 / 8)

    def test_counts_and_percentages_add_up(self):
        rng = random.Random(1234)
        for size in range(1, 60):
            reviews = [{"user_id": i, "rating": rng.randint(1, 5)} for i in range(size)]

            summary = RatingAggregator.summarize(reviews)

            assert sum(summary.histogram) == summary.total == len(reviews)
            assert sum(summary.percentages) == pytest.approx(100.0)
            assert len(summary.percentages) == 5

    def test_out_of_range_ratings_are_skipped(self):
        reviews = [
            {"user_id": 1, "rating": 4},
            {"user_id": 2, "rating": 0},
            {"user_id": 3, "rating": 6},
            {"user_id": 4, "rating": None},
            {"user_id": 5, "rating": 3.5},
            {"user_id": 6, "rating": True},
            {"user_id": 7}
        ]

        summary = RatingAggregator.summarize(reviews)

        assert summary.total == 1
        assert summary.skipped == 6
        assert summary.average == 4.0
        assert summary.histogram == [0, 1, 0, 0, 0]
        assert summary.percentages == [0.0, 100.0, 0.0, 0.0, 0.0]

    def test_only_invalid_ratings_average_zero(self):
        summary = RatingAggregator.summarize([{"user_id": 1, "rating": -2}])

        assert summary.average == 0.0
        assert summary.total == 0
        assert summary.skipped == 1
        assert summary.percentages == [0.0] * 5

    def test_summary_is_deterministic(self):
        reviews = [{"user_id": i, "rating": (i % 5) + 1} for i in range(23)]
        assert RatingAggregator.summarize(reviews) == RatingAggregator.summarize(list(reversed(reviews)))


class TestValidateSubmission:
    """Test cases for RatingAggregator.validate_submission."""

    def test_accepts_valid_review(self):
        candidate = {"user_id": 3, "rating": 4, "review_text": "Works well"}

        accepted = RatingAggregator.validate_submission([{"user_id": 1, "rating": 5}], candidate)

        assert accepted == candidate

    def test_null_text_normalized_to_empty_string(self):
        accepted = RatingAggregator.validate_submission([], {"user_id": 1, "rating": 3, "review_text": None})
        assert accepted["review_text"] == ""

    def test_missing_text_normalized_to_empty_string(self):
        accepted = RatingAggregator.validate_submission([], {"user_id": 1, "rating": 3})
        assert accepted["review_text"] == ""

    @pytest.mark.parametrize("rating", [1, 5, 4, 3, 2])
    def test_accepts_rating_range(self, rating):
        accepted = RatingAggregator.validate_submission([], {"user_id": 1, "rating": rating})
        assert accepted["rating"] == rating

    @pytest.mark.parametrize("rating", [0, 6, -1, 3.0, 2.5, "4", None, True])
    def test_rejects_invalid_rating(self, rating):
        with pytest.raises(InvalidRatingError):
            RatingAggregator.validate_submission([], {"user_id": 1, "rating": rating, "review_text": "x"})

    @pytest.mark.parametrize("candidate", [
        {"user_id": 1, "rating": 5, "review_text": "different text"},
        {"user_id": 1, "rating": 1, "review_text": None},
        {"user_id": 1, "rating": 42, "review_text": "even with a bad rating"}
    ])
    def test_rejects_second_review_from_same_user(self, candidate):
        existing = [{"user_id": 2, "rating": 4}, {"user_id": 1, "rating": 3}]

        with pytest.raises(DuplicateReviewError):
            RatingAggregator.validate_submission(existing, candidate)

    def test_does_not_mutate_candidate(self):
        candidate = {"user_id": 1, "rating": 2, "review_text": None}
        RatingAggregator.validate_submission([], candidate)
        assert candidate["review_text"] is None


class TestValidateEdit:
    """Test cases for RatingAggregator.validate_edit."""

    def test_edit_applies_new_values(self):
        review = {"id": 9, "user_id": 1, "rating": 2, "review_text": "meh"}

        edited = RatingAggregator.validate_edit(review, 5, "Much better now")

        assert edited["rating"] == 5
        assert edited["review_text"] == "Much better now"
        assert edited["id"] == 9
        assert review["rating"] == 2

    def test_edit_normalizes_text(self):
        edited = RatingAggregator.validate_edit({"user_id": 1, "rating": 2, "review_text": "x"}, 3, None)
        assert edited["review_text"] == ""

    @pytest.mark.parametrize("rating", [0, 6, 4.5])
    def test_edit_rejects_invalid_rating(self, rating):
        with pytest.raises(InvalidRatingError):
            RatingAggregator.validate_edit({"user_id": 1, "rating": 2}, rating, "text")


def test_is_valid_rating():
    assert is_valid_rating(1)
    assert is_valid_rating(5)
    assert not is_valid_rating(False)
    assert not is_valid_rating(5.0)
