import numpy as np
import pytest

from word_embedding.weighting import StandardWeighter, UnitWeighter, make_weighter


def test_standard_weighter_boundary():
    weighter = StandardWeighter()
    assert weighter.power == 0.75 and weighter.xmax == 100.0
    assert weighter.weight(100.0) == 1.0
    for x in [100.5, 101.0, 1e6]:
        assert weighter.weight(x) == 1.0


def test_standard_weighter_increasing():
    weighter = StandardWeighter()
    xs = np.linspace(0.01, 99.99, 500)
    weights = [weighter.weight(x) for x in xs]
    assert all(0.0 < w < 1.0 for w in weights)
    assert all(a < b for a, b in zip(weights[:-1], weights[1:]))
    assert weighter.weight(50.0) == pytest.approx(0.5 ** 0.75)


def test_vectorized_weights_match_scalar():
    weighter = StandardWeighter(power=0.5, xmax=10.0)
    counts = np.array([0.5, 1.0, 9.9, 10.0, 10.1, 1000.0])
    np.testing.assert_allclose(weighter.weights(counts), [weighter.weight(x) for x in counts])


def test_unit_weighter():
    weighter = UnitWeighter()
    assert weighter.weight(0.001) == 1.0
    np.testing.assert_array_equal(weighter.weights([1.0, 500.0]), [1.0, 1.0])


def test_make_weighter():
    assert make_weighter("standard", [0.78, 1337.0]) == StandardWeighter(0.78, 1337.0)
    assert make_weighter("unit") == UnitWeighter()
    with pytest.raises(NotImplementedError):
        make_weighter("cubic")


def test_zero_parameters_select_defaults():
    weighter = StandardWeighter(0, 0)
    assert weighter == StandardWeighter()
    assert weighter.weight(50.0) == pytest.approx(0.5 ** 0.75)
    assert StandardWeighter(power=0.5, xmax=0) == StandardWeighter(0.5, 100.0)
    assert make_weighter("standard", [0.0, 0.0]) == StandardWeighter()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
