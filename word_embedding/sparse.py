import copy
import threading
from bisect import bisect_left
import numpy as np
from scipy import sparse as sp


class SparseVector:
  '''list with potentially many zero entries

  Attributes:
    length: total number of entries, including zeros
    indices: strictly increasing positions of the stored entries
    values: stored value for each position in indices
  '''

  __slots__ = ('length', 'indices', 'values')

  def __init__(self, length, indices=None, values=None):

    self.length = length
    self.indices = [] if indices is None else list(indices)
    self.values = [] if values is None else list(values)

  def __len__(self):

    return self.length

  def __eq__(self, other):

    return isinstance(other, SparseVector) and (self.length, self.indices, self.values) == (other.length, other.indices, other.values)

  def __repr__(self):

    return 'SparseVector(%d, %r, %r)' % (self.length, self.indices, self.values)

  def _check(self, i):

    if i < 0 or i >= self.length:
      raise IndexError('index %d out of range for sparse vector of length %d' % (i, self.length))

  def _find(self, i):

    self._check(i)
    idx = bisect_left(self.indices, i)
    return idx, idx < len(self.indices) and self.indices[idx] == i

  def get(self, i):

    idx, found = self._find(i)
    return self.values[idx] if found else 0.0

  def set(self, i, val):

    idx, found = self._find(i)
    if found:
      self.values[idx] = val
    else:
      self.indices.insert(idx, i)
      self.values.insert(idx, val)

  def add(self, i, val):

    idx, found = self._find(i)
    if found:
      self.values[idx] += val
    else:
      self.indices.insert(idx, i)
      self.values.insert(idx, val)

  def nnz(self):
    '''number of stored entries'''

    return len(self.indices)

  def todense(self, dtype=np.float64):

    dense = np.zeros(self.length, dtype=dtype)
    dense[self.indices] = self.values
    return dense


class SparseMatrix:
  '''matrix of SparseVector rows for storing word co-occurrences
  '''

  def __init__(self, rows, cols=None):
    '''
    Args:
      rows: number of rows, or list of SparseVector rows
      cols: number of columns; defaults to the number of rows
    '''

    if isinstance(rows, (int, np.integer)):
      cols = rows if cols is None else cols
      self.rows = [SparseVector(cols) for _ in range(rows)]
    else:
      self.rows = list(rows)
      lengths = {row.length for row in self.rows}
      assert len(lengths) <= 1, "all rows must have the same length"

  def __len__(self):

    return len(self.rows)

  def __eq__(self, other):

    return isinstance(other, SparseMatrix) and self.rows == other.rows

  @property
  def shape(self):

    return len(self.rows), self.rows[0].length if self.rows else 0

  def _row(self, row):

    if row < 0 or row >= len(self.rows):
      raise IndexError('row %d out of range for sparse matrix with %d rows' % (row, len(self.rows)))
    return self.rows[row]

  def get(self, row, col):

    return self._row(row).get(col)

  def set(self, row, col, val):

    self._row(row).set(col, val)

  def add(self, row, col, val):

    self._row(row).add(col, val)

  def num_entries(self):
    '''number of entries that have been stored with set or add'''

    return sum(len(row.indices) for row in self.rows)

  def sample_uniform_entry(self, rng=None):
    '''returns a uniformly random stored position by scanning the rows
    Args:
      rng: numpy Generator; if None uses a fresh one
    Returns:
      (row, col); (0, 0) if the matrix has no entries
    '''

    numentries = self.num_entries()
    if not numentries:
      return 0, 0
    rng = np.random.default_rng() if rng is None else rng
    idx = int(rng.integers(numentries))
    for i, row in enumerate(self.rows):
      if idx < len(row.indices):
        return i, row.indices[idx]
      idx -= len(row.indices)

  def picker(self, seed=None):

    return WeightedEntryPicker(self, seed=seed)

  def coo(self):
    '''returns (values, rows, cols) arrays of all stored entries'''

    rows = np.fromiter((i for i, row in enumerate(self.rows) for _ in row.indices), np.int64)
    cols = np.fromiter((j for row in self.rows for j in row.indices), np.int64, len(rows))
    values = np.fromiter((v for row in self.rows for v in row.values), np.float64, len(rows))
    return values, rows, cols

  def tocsr(self, dtype=np.float32):
    '''exports to a scipy CSR matrix'''

    data, row, col = self.coo()
    return sp.csr_matrix((data, (row, col)), shape=self.shape, dtype=dtype)

  @classmethod
  def from_scipy(cls, matrix):
    '''builds a SparseMatrix holding the explicitly stored entries of a scipy sparse matrix'''

    csr = sp.csr_matrix(matrix)
    csr.sum_duplicates()
    csr.sort_indices()
    V, W = csr.shape
    rows = [SparseVector(W, csr.indices[start:stop].tolist(), csr.data[start:stop].tolist()) for start, stop in zip(csr.indptr[:-1], csr.indptr[1:])]
    return cls(rows) if V else cls(0, W)


class RowLocks:
  '''one mutual-exclusion lock per matrix row, index-aligned with the rows

  A writer holds at most one row lock at a time: it releases a row's lock
  before acquiring the next, so no lock ordering can deadlock.
  '''

  def __init__(self, nrows):

    self._locks = [threading.Lock() for _ in range(nrows)]

  def __len__(self):

    return len(self._locks)

  def __getitem__(self, row):

    return self._locks[row]

  def add(self, matrix, row, col, val):

    with self._locks[row]:
      matrix.add(row, col, val)


class WeightedEntryPicker:
  '''selects uniformly random stored entries of a SparseMatrix

  Each draw costs a binary search over per-row prefix sums of stored-entry
  counts. Batches of draws index a flattened column array built once per
  matrix. The matrix must not be modified while the picker is in use.
  Draws are uniform over stored positions, not weighted by stored values.
  '''

  def __init__(self, matrix, seed=None):
    '''
    Args:
      matrix: SparseMatrix to sample from
      seed: seed or numpy SeedSequence for this picker's private random source
    '''

    self.matrix = matrix
    self.offsets = np.cumsum([len(row.indices) for row in matrix.rows], dtype=np.int64)
    self.numentries = int(self.offsets[-1]) if len(self.offsets) else 0
    self.cols = np.fromiter((j for row in matrix.rows for j in row.indices), np.int64, self.numentries)
    self.rng = np.random.default_rng(seed)

  def spawn(self, seed=None):
    '''returns a picker over the same matrix with its own random source, sharing the precomputed arrays'''

    picker = copy.copy(self)
    picker.rng = np.random.default_rng(seed)
    return picker

  def _lookup(self, offset):

    row = int(np.searchsorted(self.offsets, offset, side='right'))
    indices = self.matrix.rows[row].indices
    start = int(self.offsets[row]) - len(indices)
    return row, indices[offset-start]

  def pick(self):
    '''returns a random stored (row, col), or (0, 0) if the matrix has no entries'''

    if not self.numentries:
      return 0, 0
    return self._lookup(int(self.rng.integers(self.numentries)))

  def pick_many(self, n):
    '''draws n stored positions at once
    Args:
      n: number of draws
    Returns:
      (rows, cols) integer arrays of length n; all zeros if the matrix has no entries
    '''

    if not self.numentries:
      return np.zeros(n, dtype=np.int64), np.zeros(n, dtype=np.int64)
    offsets = self.rng.integers(self.numentries, size=n)
    rows = np.searchsorted(self.offsets, offsets, side='right')
    return rows, self.cols[offsets]
