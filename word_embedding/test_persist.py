import io
import numpy as np
import pytest

from word_embedding import persist
from word_embedding.persist import SerializationError, dump, dumps, load, loads
from word_embedding.solvers import Trainer
from word_embedding.sparse import SparseMatrix, SparseVector
from word_embedding.weighting import StandardWeighter, UnitWeighter


def example_cooccurrence_matrix():
    matrix = SparseMatrix(4, 4)
    matrix.set(3, 1, 0.5)
    matrix.set(1, 3, 0.2)
    matrix.set(0, 3, 0.3)
    return matrix


def test_matrix_round_trip():
    matrix = example_cooccurrence_matrix()
    decoded = loads(dumps(matrix))
    assert decoded == matrix
    assert decoded.shape == (4, 4)
    assert decoded.rows[2].indices == []


def test_vector_and_weighter_round_trip():
    vector = SparseVector(10, [1, 4, 9], [0.5, -2.0, 3.25])
    assert loads(dumps(vector)) == vector
    assert loads(dumps(StandardWeighter(0.78, 1337.0))) == StandardWeighter(0.78, 1337.0)
    assert loads(dumps(UnitWeighter())) == UnitWeighter()


def test_file_round_trip(tmp_path):
    matrix = example_cooccurrence_matrix()
    path = str(tmp_path / "cooc.bin")
    dump(matrix, path)
    assert load(path, persist.MATRIXTAG) == matrix
    buf = io.BytesIO()
    dump(matrix, buf)
    buf.seek(0)
    assert load(buf) == matrix


def test_trainer_round_trip():
    trainer = Trainer(example_cooccurrence_matrix(), 15, seed=0, workers=2)
    trainer.weighter = StandardWeighter(power=0.78, xmax=1337)
    trainer.rate = 0.9
    trainer.num_updates = 666
    trainer.ada_vectors += 0.25
    trainer.ctx_biases[2] = -1.5

    buf = io.BytesIO()
    trainer.dump(buf)
    buf.seek(0)
    decoded = Trainer.load(buf)

    assert decoded.cooccur == trainer.cooccur
    assert decoded.weighter == trainer.weighter
    assert decoded.rate == 0.9
    assert decoded.num_updates == 666
    for name in ["vectors", "ctx_vectors", "ada_vectors", "ada_ctx_vectors", "biases", "ctx_biases", "ada_biases", "ada_ctx_biases"]:
        expected, actual = getattr(trainer, name), getattr(decoded, name)
        assert actual.shape == expected.shape
        assert actual.dtype == expected.dtype
        np.testing.assert_array_equal(actual, expected)


def test_wrong_type_reports_field():
    payload = persist.encode_matrix(example_cooccurrence_matrix()) + persist.encode_weighter(StandardWeighter()) + persist.encode_int(1)
    data = persist.MAGIC + persist.record(persist.TRAINERTAG, payload)
    with pytest.raises(SerializationError) as info:
        Trainer.load(io.BytesIO(data))
    assert "Trainer" in str(info.value)
    assert "'rate'" in str(info.value)


def test_truncated_file():
    data = dumps(example_cooccurrence_matrix())
    with pytest.raises(SerializationError) as info:
        loads(data[:-5])
    assert "truncated" in str(info.value)


def test_bad_header():
    with pytest.raises(SerializationError):
        loads(b"JUNK" + dumps(UnitWeighter())[4:])


def test_unknown_weighter():
    data = persist.MAGIC + persist.record(persist.WEIGHTERTAG, persist.encode_str("cubic"))
    with pytest.raises(SerializationError) as info:
        loads(data)
    assert "unknown weighter" in str(info.value)


def test_unsorted_indices_rejected():
    vector = SparseVector(5, [3, 1], [1.0, 1.0])
    with pytest.raises(SerializationError) as info:
        loads(dumps(vector))
    assert "'indices'" in str(info.value)


def test_trainer_rejects_rectangular_matrix():
    matrix = SparseMatrix(2, 5)
    matrix.set(1, 4, 2.0)
    assert loads(dumps(matrix)).shape == (2, 5)
    data = persist.MAGIC + persist.record(persist.TRAINERTAG, persist.encode_matrix(matrix))
    with pytest.raises(SerializationError) as info:
        Trainer.load(io.BytesIO(data))
    assert "'cooccur'" in str(info.value)
    assert "square" in str(info.value)


def vector_record(indices, values, length=5):
    payload = persist.encode_int(length) + persist.encode_array(indices) + persist.encode_array(values)
    return persist.MAGIC + persist.record(persist.VECTORTAG, payload)


def test_non_integer_indices_rejected():
    with pytest.raises(SerializationError) as info:
        loads(vector_record(np.array([1.0]), np.array([2.0])))
    assert "'indices'" in str(info.value)
    assert "float64" in str(info.value)


def test_non_float_values_rejected():
    with pytest.raises(SerializationError) as info:
        loads(vector_record(np.array([1, 3]), np.array([2, 4])))
    assert "'values'" in str(info.value)


def test_unsigned_indices_accepted():
    vector = loads(vector_record(np.array([0, 4], dtype=np.uint32), np.array([1.0, 2.0], dtype=np.float32)))
    assert vector == SparseVector(5, [0, 4], [1.0, 2.0])


def test_expected_tag():
    with pytest.raises(SerializationError):
        loads(dumps(UnitWeighter()), tag=persist.MATRIXTAG)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
