"""Tests for the backward completion-mass propagation."""

import math
import pytest
import numpy as np
from numpy.testing import assert_allclose

from constrained_markov.core.forward import build_forward_table
from constrained_markov.core.backward import build_backward_table
from constrained_markov.core.transition_model import train
from constrained_markov.data.constraint_system import ConstraintSet


def _tables(model, constraints, length):
    constraint_set = ConstraintSet(constraints, length, model.symbols)
    forward = build_forward_table(model, constraint_set)
    return constraint_set, forward, build_backward_table(model, constraint_set, forward)


class TestBackwardTable:
    """Test suite for build_backward_table."""

    def test_total_mass_equals_forward_partition(self, cyclic_model):
        _, forward, backward = _tables(cyclic_model, {1: {'A'}, 3: {'B', 'C'}}, 6)
        assert backward.log_total_mass == pytest.approx(forward.log_partition, rel=1e-10)

    def test_forward_backward_product_is_constant(self, cyclic_model_order2):
        """sum_s alpha_i(s) * beta_i(s) equals Z at every position."""
        _, forward, backward = _tables(cyclic_model_order2, {0: {'C'}, 2: {'B'}, 5: {'A', 'B'}}, 7)
        log_z = forward.log_partition
        for position in range(forward.length):
            f_layer, b_layer = forward[position], backward[position]
            product = sum(mass * b_layer.mass_of(state) for state, mass in f_layer.items())
            log_product = math.log(product) + f_layer.log_scale + b_layer.log_scale
            assert log_product == pytest.approx(log_z, abs=1e-9)

    def test_last_layer_is_indicator(self, cyclic_model):
        _, forward, backward = _tables(cyclic_model, {3: {'C'}}, 4)
        assert_allclose(backward[3].masses, np.ones(len(backward[3])))
        assert backward[3].log_scale == 0.0

    def test_layers_are_scaled_by_max(self, cyclic_model):
        _, _, backward = _tables(cyclic_model, {5: {'A'}}, 6)
        for layer in backward.layers:
            assert layer.masses.max() == pytest.approx(1.0)

    def test_dead_end_states_get_zero_mass(self):
        # Under 'reject', (B, C) has no continuation, so C at position 2 leads nowhere
        model = train(["ABC", "ABD", "BDA", "DAB"], order=2)
        _, forward, backward = _tables(model, {}, 4)
        ids = model.symbols
        dead = (ids.id_of('B'), ids.id_of('C'))
        alive = (ids.id_of('B'), ids.id_of('D'))
        assert dead in forward[2].states
        assert backward[2].mass_of(dead) == 0.0
        assert backward[2].mass_of(alive) > 0.0

    def test_scale_ratio(self, cyclic_model):
        _, _, backward = _tables(cyclic_model, {0: {'A'}, 2: {'B'}}, 4)
        expected = math.exp(backward[0].log_scale - backward[1].log_scale)
        assert backward.scale_ratio(0, 1) == pytest.approx(expected)
        assert backward.scale_ratio(2, 2) == 1.0

    def test_length_mismatch(self, cyclic_model):
        short = ConstraintSet({}, 3, cyclic_model.symbols)
        long = ConstraintSet({}, 4, cyclic_model.symbols)
        forward = build_forward_table(cyclic_model, short)
        with pytest.raises(ValueError, match="length"):
            build_backward_table(cyclic_model, long, forward)

    def test_single_position(self, cyclic_model):
        _, forward, backward = _tables(cyclic_model, {0: {'B'}}, 1)
        assert backward.length == 1
        assert backward.log_total_mass == pytest.approx(math.log(0.25))
        assert forward.log_partition == pytest.approx(math.log(0.25))
