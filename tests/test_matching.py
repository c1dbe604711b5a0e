"""Tests for the nearest-neighbour matcher."""

import numpy as np
import pytest

from attendance_kiosk.exceptions import EmbeddingDimensionError
from attendance_kiosk.recognition.matching import Matcher, l2_distances
from attendance_kiosk.recognition.types import (
    DetectionSample,
    EnrolledIdentity,
    MatchOutcome,
)

from conftest import vec


def identity(identity_id, *values):
    return EnrolledIdentity(id=identity_id, display_name=identity_id.upper(), embedding=vec(*values))


def sample(*values):
    return DetectionSample(embedding=vec(*values))


@pytest.fixture
def matcher():
    return Matcher(threshold=0.6)


@pytest.fixture
def snapshot():
    return (
        identity('a', 1.0, 0.0),
        identity('b', 0.0, 1.0),
        identity('c', 0.0, 0.0, 1.0),
    )


class TestMatched:

    def test_identical_embedding_matches_at_distance_zero(self, matcher, snapshot):
        for candidate in snapshot:
            result = matcher.resolve([DetectionSample(embedding=candidate.embedding)], snapshot)
            assert result.outcome is MatchOutcome.MATCHED
            assert result.identity_id == candidate.id
            assert result.distance == 0.0

    def test_close_sample_matches_nearest(self, matcher):
        result = matcher.resolve(sample(1.01, 0.0), (identity('a', 1.0, 0.0),))
        assert result.matched
        assert result.identity_id == 'a'
        assert result.display_name == 'A'
        assert result.distance == pytest.approx(0.01, abs=1e-6)

    def test_single_sample_is_accepted_without_list(self, matcher, snapshot):
        result = matcher.resolve(sample(0.0, 1.0), snapshot)
        assert result.identity_id == 'b'

    def test_threshold_is_inclusive(self):
        matcher = Matcher(threshold=0.5)
        result = matcher.resolve(sample(0.5), (identity('a', 0.0),))
        assert result.matched

    def test_tie_goes_to_earliest_enrolled(self, matcher):
        snapshot = (identity('first', 0.3, 0.0), identity('second', 0.0, 0.3))
        results = [matcher.resolve(sample(0.0, 0.0), snapshot) for _ in range(5)]
        assert all(r.identity_id == 'first' for r in results)

        reversed_snapshot = tuple(reversed(snapshot))
        assert matcher.resolve(sample(0.0, 0.0), reversed_snapshot).identity_id == 'second'


class TestRejected:

    def test_far_sample_is_no_match(self, matcher):
        result = matcher.resolve(sample(1.8, 0.0), (identity('a', 1.0, 0.0),))
        assert result.outcome is MatchOutcome.NO_MATCH
        assert result.identity_id is None
        assert result.distance == pytest.approx(0.8, abs=1e-6)

    def test_empty_snapshot(self, matcher):
        for query in (sample(0.0), sample(1.0, 2.0, 3.0, 4.0)):
            result = matcher.resolve(query, ())
            assert result.outcome is MatchOutcome.EMPTY
            assert result.identity_id is None

    def test_multiple_faces_are_ambiguous_even_with_perfect_match(self, matcher, snapshot):
        perfect = DetectionSample(embedding=snapshot[0].embedding)
        result = matcher.resolve([perfect, sample(5.0, 5.0)], snapshot)
        assert result.outcome is MatchOutcome.AMBIGUOUS
        assert result.identity_id is None

    def test_ambiguous_takes_precedence_over_empty(self, matcher):
        result = matcher.resolve([sample(1.0), sample(2.0)], ())
        assert result.outcome is MatchOutcome.AMBIGUOUS

    def test_no_samples_is_an_error(self, matcher, snapshot):
        with pytest.raises(ValueError):
            matcher.resolve([], snapshot)

    def test_dimension_mismatch_is_an_error(self, matcher, snapshot):
        query = DetectionSample(embedding=np.zeros(8, dtype=np.float32))
        with pytest.raises(EmbeddingDimensionError):
            matcher.resolve(query, snapshot)


def test_resolve_is_repeatable(matcher, snapshot):
    query = sample(0.1, 0.9)
    first = matcher.resolve(query, snapshot)
    second = matcher.resolve(query, snapshot)
    assert first == second


def test_negative_threshold_rejected():
    with pytest.raises(ValueError):
        Matcher(threshold=-0.1)


def test_l2_distances():
    candidates = np.array([[3.0, 4.0], [0.0, 0.0]], dtype=np.float32)
    distances = l2_distances(np.zeros(2, dtype=np.float32), candidates)
    np.testing.assert_allclose(distances, [5.0, 0.0])
