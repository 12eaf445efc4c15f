"""
Review rating aggregation and submission checks.

Reviews are plain mappings with at least ``user_id`` and ``rating`` keys,
the shape the marketplace store keeps them in.
"""

from typing import Any, Iterable, List, Mapping, Optional

from .app_models import RatingSummary
from .errors import DuplicateReviewError, InvalidRatingError

MIN_RATING = 1
MAX_RATING = 5
STAR_LEVELS = MAX_RATING - MIN_RATING + 1


def is_valid_rating(rating: Any) -> bool:
    """True for an int (not bool) between 1 and 5."""
    return (
        isinstance(rating, int)
        and not isinstance(rating, bool)
        and MIN_RATING <= rating <= MAX_RATING
    )


def _normalize_text(text: Optional[str]) -> str:
    return "" if text is None else text


def _check_rating(rating: Any) -> None:
    if not is_valid_rating(rating):
        raise InvalidRatingError(
            f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}, got {rating!r}"
        )


class RatingAggregator:
    """
    Stateless rating summary and review validation.

    Histograms and percentages are ordered from 5 stars down to 1 star.
    """

    @staticmethod
    def summarize(reviews: Iterable[Mapping[str, Any]]) -> RatingSummary:
        """
        Summarize the ratings of one application.

        Ratings outside 1-5 are left out of every figure and counted in
        ``skipped`` instead. With no valid ratings the average and all
        percentages are 0.0.

        Example:
            RatingAggregator.summarize([{"user_id": 1, "rating": 5},
                                        {"user_id": 2, "rating": 1}])
            # average=3.0, histogram=[1, 0, 0, 0, 1], percentages=[50.0, 0.0, 0.0, 0.0, 50.0]
        """
        histogram = [0] * STAR_LEVELS
        rating_sum = 0
        skipped = 0

        for review in reviews:
            rating = review.get('rating')
            if not is_valid_rating(rating):
                skipped += 1
                continue
            histogram[MAX_RATING - rating] += 1
            rating_sum += rating

        total = sum(histogram)
        if total == 0:
            return RatingSummary(histogram=histogram, skipped=skipped)

        percentages: List[float] = [count / total * 100 for count in histogram]
        return RatingSummary(
            average=rating_sum / total,
            total=total,
            histogram=histogram,
            percentages=percentages,
            skipped=skipped
        )

    @staticmethod
    def validate_submission(existing_reviews: Iterable[Mapping[str, Any]],
                            candidate: Mapping[str, Any]) -> dict:
        """
        Accept or reject a new review.

        Args:
            existing_reviews: Reviews already stored for the application
            candidate: ``user_id``, ``rating`` and optional ``review_text``

        Returns:
            dict: the candidate with ``review_text`` normalized to a string

        Raises:
            DuplicateReviewError: the user already reviewed the application
            InvalidRatingError: the rating is not an integer between 1 and 5
        """
        user_id = candidate.get('user_id')
        if any(review.get('user_id') == user_id for review in existing_reviews):
            raise DuplicateReviewError(
                f"User {user_id} has already reviewed this application"
            )

        _check_rating(candidate.get('rating'))

        accepted = dict(candidate)
        accepted['review_text'] = _normalize_text(candidate.get('review_text'))
        return accepted

    @staticmethod
    def validate_edit(existing_review: Mapping[str, Any],
                      new_rating: Any,
                      new_text: Optional[str]) -> dict:
        """
        Apply an edit to a review after checking the new rating.

        Whether the caller is the author is checked by the caller.
        """
        _check_rating(new_rating)

        edited = dict(existing_review)
        edited['rating'] = new_rating
        edited['review_text'] = _normalize_text(new_text)
        return edited
