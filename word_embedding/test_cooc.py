import numpy as np
import pytest

from word_embedding.cooc import CooccurCounter, cooc_count
from word_embedding.features import TokenSet, vocab_count
from word_embedding.persist import MATRIXTAG, load
from word_embedding.sparse import SparseMatrix


def random_documents(tokens, n, seed=0):
    rng = np.random.default_rng(seed)
    return [[tokens[i] for i in rng.integers(len(tokens), size=rng.integers(20))] for _ in range(n)]


def test_whole_document_counts():
    document = ["c", "a", "a", "b", "b", "a", "c", "d", "c"]
    tokens = TokenSet(["a", "b", "c", "d"])
    counter = CooccurCounter(tokens, SparseMatrix(tokens.num_ids()), window=0)
    counter.add(document)

    expected = sum(1 for i in range(len(document)) for j in range(i) if {document[i], document[j]} == {"a", "c"})
    assert expected == 9
    a, c = tokens.id("a"), tokens.id("c")
    assert counter.matrix.get(a, c) == expected
    assert counter.matrix.get(c, a) == expected


def test_window_and_distance_weighting():
    tokens = TokenSet(["x", "y", "z"])
    counter = CooccurCounter(tokens, window=1)
    counter.add(["x", "y", "z"])
    x, y, z = tokens.ids(["x", "y", "z"])
    assert counter.matrix.get(x, y) == 1.0
    assert counter.matrix.get(x, z) == 0.0

    counter = CooccurCounter(tokens, window=0, weight_words=True)
    counter.add(["x", "y", "z"])
    assert counter.matrix.get(x, z) == 0.5
    assert counter.matrix.get(z, x) == 0.5
    assert counter.matrix.get(y, z) == 1.0


def test_repeated_token_counts_diagonal_twice():
    tokens = TokenSet(["x"])
    counter = CooccurCounter(tokens)
    counter.add(["x", "x"])
    assert counter.matrix.get(0, 0) == 2.0


def test_out_of_vocabulary_row():
    tokens = TokenSet(["a", "b"])
    counter = CooccurCounter(tokens)
    counter.add(["a", "unknown"])
    oov = len(tokens)
    assert counter.matrix.get(tokens.id("a"), oov) == 1.0
    assert counter.matrix.get(oov, tokens.id("a")) == 1.0


@pytest.mark.parametrize("window,weight_words", [(0, False), (3, False), (2, True)])
def test_add_is_symmetric(window, weight_words):
    tokens = TokenSet("abcdefgh")
    counter = CooccurCounter(tokens, window=window, weight_words=weight_words)
    for document in random_documents(list("abcdefghij"), 50):
        counter.add(document)
    dense = counter.matrix.tocsr(dtype=np.float64).toarray()
    np.testing.assert_array_equal(dense, dense.T)


@pytest.mark.parametrize("window,weight_words", [(0, False), (4, True)])
def test_add_all_matches_add(window, weight_words):
    tokens = TokenSet("abcdefgh")
    documents = random_documents(list("abcdefghij"), 300, seed=4)
    serial = CooccurCounter(tokens, window=window, weight_words=weight_words)
    for document in documents:
        serial.add(document)
    parallel = CooccurCounter(tokens, window=window, weight_words=weight_words)
    assert parallel.add_all(iter(documents), workers=4) == len(documents)

    expected = serial.matrix.tocsr(dtype=np.float64).toarray()
    actual = parallel.matrix.tocsr(dtype=np.float64).toarray()
    np.testing.assert_allclose(actual, expected)
    np.testing.assert_allclose(actual, actual.T)
    assert parallel.matrix.num_entries() == serial.matrix.num_entries()


def test_add_all_propagates_errors():

    class BrokenTokens:

        def num_ids(self):
            return 3

        def ids(self, document):
            raise KeyError(document[0])

    counter = CooccurCounter(BrokenTokens())
    with pytest.raises(KeyError):
        counter.add_all([["a"], ["b"]], workers=2)


def test_cooc_count_pipeline(tmp_path):
    corpus = tmp_path / "corpus.txt"
    corpus.write_text("The cat sat on the mat.\nThe dog sat on the log!\n")
    vocabfile = str(tmp_path / "vocab.txt")
    coocfile = str(tmp_path / "cooc.bin")

    tokens = vocab_count(str(corpus), vocabfile, verbose=False)
    matrix = cooc_count(str(corpus), vocabfile, coocfile, window=2, weight_words=True, workers=2, verbose=False)

    assert len(matrix) == tokens.num_ids()
    the, sat = tokens.id("the"), tokens.id("sat")
    assert matrix.get(the, sat) == pytest.approx(2.0)
    assert matrix.get(sat, the) == pytest.approx(2.0)
    assert matrix.get(tokens.id("cat"), tokens.id(".")) == 0.0
    assert load(coocfile, MATRIXTAG) == matrix


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
