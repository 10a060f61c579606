"""Tests for sign packing, configuration gates and the random-projection hasher."""

from __future__ import annotations

import numpy as np
import pytest

from eanndb import (
    ConfigurationError,
    ConfigurationTooWide,
    IndexConfig,
    RandomProjection,
    ShapeMismatch,
    Sign,
    Strategy,
    WORD_BITS,
    pack_signs,
)
from eanndb.hash.lsh import pack_sign_matrix
from tests.conftest import RecordingRNG

P, N = Sign.POSITIVE, Sign.NEGATIVE

# ---------------------------------------------------------------------------
# Sign packing
# ---------------------------------------------------------------------------


class TestPackSigns:
    def test_least_significant_bit_is_first_sign(self):
        assert pack_signs([N, N, N, P, P]) == 0b11000
        assert pack_signs([P, N, N, P, P]) == 0b11001

    def test_empty_sequence_is_zero(self):
        assert pack_signs([]) == 0

    def test_all_positive_word(self):
        assert pack_signs([P] * 64) == (1 << 64) - 1

    def test_more_signs_than_word_bits(self):
        with pytest.raises(ConfigurationTooWide):
            pack_signs([N] * 9, word_bits=8)

    def test_matrix_matches_scalar(self, rng):
        bits = rng.integers(0, 2, size=(40, 13)).astype(bool)
        packed = pack_sign_matrix(bits)
        assert packed.dtype == np.uint64
        assert [int(v) for v in packed] == [pack_signs(row) for row in bits]

    def test_matrix_with_zero_columns(self):
        np.testing.assert_array_equal(pack_sign_matrix(np.zeros((3, 0), dtype=bool)), [0, 0, 0])

    def test_matrix_must_be_2d(self):
        with pytest.raises(ShapeMismatch):
            pack_sign_matrix(np.zeros(4, dtype=bool))

    def test_matrix_wider_than_word_bits(self):
        with pytest.raises(ConfigurationTooWide, match="exceeds the 8-bit word"):
            pack_sign_matrix(np.zeros((2, 9), dtype=bool), word_bits=8)
        np.testing.assert_array_equal(
            pack_sign_matrix(np.ones((1, 8), dtype=bool), word_bits=8), [0xFF]
        )

    def test_matrix_defaults_to_host_word(self):
        with pytest.raises(ConfigurationTooWide, match=f"exceeds the {WORD_BITS}-bit word"):
            pack_sign_matrix(np.zeros((1, WORD_BITS + 1), dtype=bool))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestIndexConfig:
    def test_concatenate_bin_space(self):
        cfg = IndexConfig(num_hyperplanes=4, dim=16).validate()
        assert cfg.bin_bits == 4
        assert cfg.num_bins == 16

    @pytest.mark.parametrize(
        "num_hyperplanes, depth", [(1, 0), (2, 1), (3, 2), (4, 2), (7, 3), (8, 3), (16, 4)]
    )
    def test_tree_depth_is_ceil_log2(self, num_hyperplanes, depth):
        cfg = IndexConfig(num_hyperplanes=num_hyperplanes, dim=4, strategy="tree").validate()
        assert cfg.bin_bits == depth
        assert cfg.num_bins == 1 << depth

    def test_strategy_names(self):
        assert Strategy.resolve("TREE") is Strategy.TREE
        assert Strategy.resolve("concat") is Strategy.CONCATENATE
        assert Strategy.resolve(Strategy.TREE) is Strategy.TREE
        with pytest.raises(ConfigurationError, match="Unsupported construction strategy"):
            Strategy.resolve("ring")

    def test_word_gate_concatenate(self):
        IndexConfig(num_hyperplanes=64, dim=2, word_bits=64).validate()
        with pytest.raises(ConfigurationTooWide):
            IndexConfig(num_hyperplanes=65, dim=2, word_bits=64).validate()

    def test_word_gate_tree(self):
        # depth 4 > 3-bit word
        with pytest.raises(ConfigurationTooWide):
            IndexConfig(num_hyperplanes=16, dim=2, strategy="tree", word_bits=3).validate()
        # NB far beyond the word still fits a tree
        IndexConfig(num_hyperplanes=127, dim=2, strategy="tree", word_bits=64).validate()

    def test_incomplete_tree_rejected(self):
        with pytest.raises(ConfigurationError, match="needs at least 7 hyperplanes"):
            IndexConfig(num_hyperplanes=5, dim=2, strategy="tree").validate()

    @pytest.mark.parametrize(
        "num_hyperplanes, hint",
        [
            (5, "fill a tree of depth 2, which 3 or 4 hyperplanes select, or use 7 or 8 for depth 3"),
            (6, "fill a tree of depth 2, which 3 or 4"),
            (12, "fill a tree of depth 3, which 7 or 8 hyperplanes select, or use 15 or 16 for depth 4"),
        ],
    )
    def test_incomplete_tree_message_suggests_valid_counts(self, num_hyperplanes, hint):
        with pytest.raises(ConfigurationError) as excinfo:
            IndexConfig(num_hyperplanes=num_hyperplanes, dim=2, strategy="tree").validate()
        assert hint in str(excinfo.value)

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"num_hyperplanes": 0, "dim": 4}, "num_hyperplanes must be > 0"),
            ({"num_hyperplanes": 4, "dim": 0}, "dim must be > 0"),
            ({"num_hyperplanes": 4, "dim": 4, "dtype": np.int32}, "Unsupported dtype"),
            ({"num_hyperplanes": 4, "dim": 4, "dtype": np.float16}, "Unsupported dtype"),
        ],
    )
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            IndexConfig(**kwargs).validate()

    def test_as_dict(self):
        info = IndexConfig(num_hyperplanes=8, dim=3, strategy="tree").as_dict()
        assert info["strategy"] == "tree"
        assert info["dtype"] == "float32"
        assert info["num_bins"] == 8


# ---------------------------------------------------------------------------
# Hasher
# ---------------------------------------------------------------------------


class TestRandomProjectionConcatenate:
    def test_identity_planes_pack_coordinate_signs(self):
        hasher = RandomProjection(np.eye(4))
        assert hasher.bin(np.array([1.0, -1.0, 1.0, -1.0])) == 0b0101
        assert hasher.bin(np.array([-1.0, -1.0, -1.0, 2.0])) == 0b1000
        assert hasher.signs(np.array([1.0, -1.0, 0.0, 3.0])) == [P, N, N, P]

    def test_zero_query_lands_in_bin_zero(self):
        hasher = RandomProjection(np.eye(3))
        assert hasher.bin(np.zeros(3)) == 0

    def test_bins_in_range_and_repeatable(self, rng):
        hasher = RandomProjection.sample(rng, IndexConfig(num_hyperplanes=6, dim=16))
        for _ in range(50):
            q = rng.standard_normal(16)
            b = hasher.bin(q)
            assert 0 <= b < 64
            assert hasher.bin(q) == b

    @pytest.mark.parametrize("dtype", [np.float32, np.float64])
    def test_batch_agrees_with_single(self, rng, dtype):
        hasher = RandomProjection.sample(rng, IndexConfig(num_hyperplanes=10, dim=24, dtype=dtype))
        vectors = rng.standard_normal((200, 24)).astype(dtype)
        batch = hasher.bin_batch(vectors)
        assert batch.dtype == np.uint64
        assert [int(b) for b in batch] == [hasher.bin(v) for v in vectors]

    def test_full_word(self, rng):
        hasher = RandomProjection.sample(rng, IndexConfig(num_hyperplanes=64, dim=8))
        q = rng.standard_normal(8)
        assert hasher.bin(q) == pack_signs(hasher.signs(q))
        # Negating the query flips every sign
        assert hasher.bin(-q) == hasher.bin(q) ^ ((1 << 64) - 1)

    def test_path_is_none(self):
        assert RandomProjection(np.eye(2)).path(np.ones(2)) is None

    def test_hyperplanes_are_copied_and_read_only(self):
        planes = np.eye(3)
        hasher = RandomProjection(planes)
        planes[0, 0] = -1.0
        assert hasher.hyperplanes[0, 0] == 1.0
        with pytest.raises(ValueError):
            hasher.hyperplanes[0, 0] = 5.0


class TestRandomProjectionTree:
    def test_descent_follows_sign(self):
        # Nodes: 0 -> e0, 1 -> e1, 2 -> e2, 3 -> e3; depth 2
        hasher = RandomProjection(np.eye(4), "tree")
        right = np.array([1.0, 0.0, -1.0, 0.0])
        left = np.array([-1.0, 1.0, 0.0, 0.0])

        assert hasher.path(right) == [0, 2]
        assert hasher.signs(right) == [P, N]
        assert hasher.bin(right) == 0b01

        assert hasher.path(left) == [0, 1]
        assert hasher.signs(left) == [N, P]
        assert hasher.bin(left) == 0b10

    def test_bins_bounded_by_depth(self, rng):
        hasher = RandomProjection.sample(rng, IndexConfig(num_hyperplanes=16, dim=8, strategy="tree"))
        bins = hasher.bin_batch(rng.standard_normal((500, 8)))
        assert hasher.num_bins == 16
        assert int(bins.max()) < 16

    def test_batch_agrees_with_single(self, rng):
        hasher = RandomProjection.sample(rng, IndexConfig(num_hyperplanes=7, dim=5, strategy="tree"))
        vectors = rng.standard_normal((100, 5)).astype(np.float32)
        assert [int(b) for b in hasher.bin_batch(vectors)] == [hasher.bin(v) for v in vectors]

    def test_single_node_tree_has_one_bin(self, rng):
        hasher = RandomProjection(rng.standard_normal((1, 3)), Strategy.TREE)
        assert hasher.num_bins == 1
        assert hasher.bin(rng.standard_normal(3)) == 0
        assert hasher.signs(rng.standard_normal(3)) == []

    def test_only_path_hyperplanes_matter(self):
        planes = np.eye(4)
        hasher_a = RandomProjection(planes, "tree")
        # Node 3 is never reached by a depth-2 descent
        planes_b = planes.copy()
        planes_b[3] = [0.0, 0.0, 0.0, -1.0]
        hasher_b = RandomProjection(planes_b, "tree")

        for q in np.random.default_rng(1).standard_normal((30, 4)):
            assert hasher_a.bin(q) == hasher_b.bin(q)


class TestRandomProjectionValidation:
    def test_sample_checks_width_before_drawing(self):
        rng = RecordingRNG()
        with pytest.raises(ConfigurationTooWide):
            RandomProjection.sample(rng, IndexConfig(num_hyperplanes=65, dim=4))
        assert rng.standard_normal_calls == 0

    def test_hyperplanes_must_be_2d(self):
        with pytest.raises(ShapeMismatch):
            RandomProjection(np.ones(4))
        with pytest.raises(ShapeMismatch):
            RandomProjection(np.ones((0, 4)))

    def test_query_dimension_mismatch(self):
        hasher = RandomProjection(np.eye(4))
        with pytest.raises(ShapeMismatch, match="dimension 4"):
            hasher.bin(np.ones(5))

    def test_batch_must_be_2d(self):
        hasher = RandomProjection(np.eye(4))
        with pytest.raises(ShapeMismatch, match="2D"):
            hasher.bin_batch(np.ones(4))
        with pytest.raises(ShapeMismatch, match="dimension"):
            hasher.bin_batch(np.ones((2, 3)))

    def test_integer_hyperplanes_promoted_to_float(self):
        hasher = RandomProjection(np.eye(2, dtype=int))
        assert hasher.dtype == np.float64
