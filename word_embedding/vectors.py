import h5py
import numpy as np
from sklearn.metrics.pairwise import euclidean_distances
from sklearn.preprocessing import normalize
from word_embedding.features import TokenSet


FLOAT = np.float32
# NOTE: tokens are never empty, so the empty word marks the out-of-vocabulary vector in text files
OOV = ''


def load(vectorfile, vocabulary=None, dimension=None):
  '''generates word embeddings from file
  Args:
    vectorfile: word embedding text file or HDF5 file with keys 'words' and 'vectors' (and optionally 'oov')
    vocabulary: set of strings to load; if None loads all words from file
    dimension: number of dimensions to load
  Returns:
    (word, vector) generator; the out-of-vocabulary vector, if stored, is yielded with word OOV
  '''

  try:
    f = h5py.File(vectorfile, 'r')
  except OSError:
    f = None

  if f is None:
    with open(vectorfile, 'r') as f:
      for line in f:
        index = line.index(' ')
        word = line[:index]
        if vocabulary is None or word in vocabulary:
          yield word, np.array([FLOAT(entry) for entry in line[index+1:].split()[:dimension]])
  else:
    with f:
      for word, vector in zip(f['words'], f['vectors']):
        if isinstance(word, bytes):
          word = word.decode('utf-8')
        if vocabulary is None or word in vocabulary:
          yield word, vector[:dimension].astype(FLOAT)
      if 'oov' in f and (vocabulary is None or OOV in vocabulary):
        yield OOV, f['oov'][:dimension].astype(FLOAT)


class Embedding:
  '''trained word embedding: one vector per token ID

  The table has tokens.num_ids() rows, the last one belonging to the
  out-of-vocabulary ID. The vectors are copied on construction.
  '''

  def __init__(self, tokens, vectors):
    '''
    Args:
      tokens: TokenSet
      vectors: array of size (tokens.num_ids(), dimension)
    '''

    vectors = np.array(vectors, dtype=FLOAT)
    assert vectors.ndim == 2, "vectors must be a matrix"
    assert vectors.shape[0] == tokens.num_ids(), "need one vector per token ID (including the out-of-vocabulary ID)"
    self.tokens = tokens
    self.vectors = vectors
    self.vectors.setflags(write=False)

  def dim(self):

    return self.vectors.shape[1]

  def embed(self, token):

    return self.embed_id(self.tokens.id(token))

  def embed_id(self, id):

    return self.vectors[id].copy()

  def token(self, id):

    return self.tokens.token(id)

  def lookup(self, vec, n):
    '''finds the n token IDs whose vectors are closest to vec in Euclidean distance
    Args:
      vec: query vector of length dim()
      n: number of IDs to return; fewer are returned if the table is smaller
    Returns:
      list of IDs, nearest first
    '''

    vec = np.asarray(vec, dtype=FLOAT)
    if vec.shape != (self.dim(),):
      raise ValueError('query vector has shape '+str(vec.shape)+' but embedding dimension is '+str(self.dim()))
    distances = euclidean_distances(vec[None, :], self.vectors)[0]
    return np.argsort(distances, kind='stable')[:n].tolist()

  def similar(self, token, n=10):
    '''returns the n tokens nearest to a token by cosine similarity, excluding the token itself'''

    unit = normalize(self.vectors[:-1])
    id = self.tokens.id(token)
    if id == len(self.tokens):
      return []
    scores = unit.dot(unit[id])
    scores[id] = -np.inf
    return [self.tokens.token(i) for i in np.argsort(-scores, kind='stable')[:n]]

  def dump(self, f):
    '''writes the vectors of all tokens followed by the out-of-vocabulary vector
    Args:
      f: filename string; written as HDF5 if it ends in '.h5' or '.hdf5', otherwise as GloVe-style text
    Returns:
      None
    '''

    words = list(self.tokens)
    if f.endswith('.h5') or f.endswith('.hdf5'):
      with h5py.File(f, 'w') as g:
        g.create_dataset('words', data=np.array([w.encode('utf-8') for w in words]))
        g.create_dataset('vectors', data=self.vectors[:len(words)])
        g.create_dataset('oov', data=self.vectors[-1])
    else:
      with open(f, 'w') as g:
        for word, vector in zip(words, self.vectors):
          g.write(word+' '+' '.join(repr(float(x)) for x in vector)+'\n')
        g.write(OOV+' '+' '.join(repr(float(x)) for x in self.vectors[-1])+'\n')

  @classmethod
  def load(cls, vectorfile, dimension=None):
    '''loads an embedding written by dump; the out-of-vocabulary vector is zero if the file has none
    Args:
      vectorfile: word embedding text file or HDF5 file
      dimension: number of dimensions to load
    Returns:
      Embedding
    '''

    w2v = dict(load(vectorfile, dimension=dimension))
    oov = w2v.pop(OOV, None)
    tokens = TokenSet(w2v)
    if w2v:
      d = len(next(iter(w2v.values())))
    else:
      d = (dimension or 0) if oov is None else len(oov)
    vectors = np.zeros((tokens.num_ids(), d), dtype=FLOAT)
    for i, word in enumerate(tokens):
      vectors[i] = w2v[word]
    if not oov is None:
      vectors[-1] = oov
    return cls(tokens, vectors)
