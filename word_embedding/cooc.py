import threading
import time
from queue import Queue
from word_embedding.documents import nworkers
from word_embedding.documents import read_documents
from word_embedding.documents import write
from word_embedding.features import TokenSet
from word_embedding.features import split_on_punctuation
from word_embedding.persist import dump
from word_embedding.sparse import RowLocks
from word_embedding.sparse import SparseMatrix


CHUNK = 100000
QUEUE_FACTOR = 2


class CooccurCounter:
  '''tallies co-occurrences of tokens in a stream of tokenized documents

  Entry (i, j) of the matrix counts token j in the context of token i; every
  co-occurrence is added to both (i, j) and (j, i), so the matrix stays
  symmetric. The matrix should have tokens.num_ids() rows and columns, the
  last ID standing for out-of-vocabulary tokens.
  '''

  def __init__(self, tokens, matrix=None, window=0, weight_words=False):
    '''
    Args:
      tokens: TokenSet (or any object with an ids method) translating tokens to matrix indices
      matrix: SparseMatrix to tally into; if None a new one with tokens.num_ids() rows is created
      window: maximum distance between co-occurring tokens; 0 counts the whole document
      weight_words: weight each co-occurrence by the inverse distance between the tokens
    '''

    assert window >= 0, "window must be nonnegative"
    self.tokens = tokens
    self.matrix = SparseMatrix(tokens.num_ids()) if matrix is None else matrix
    self.window = window
    self.weight_words = weight_words
    self.locks = RowLocks(len(self.matrix))

  def pairs(self, ids):
    '''generates (id1, id2, weight) for every co-occurring pair of positions in a document'''

    window, weighted = self.window, self.weight_words
    for i, id1 in enumerate(ids):
      start = 0 if window == 0 else max(0, i-window)
      for j in range(i-1, start-1, -1):
        yield id1, ids[j], 1.0/(i-j) if weighted else 1.0

  def add(self, document):
    '''adds all co-occurrences from a tokenized document
    Args:
      document: list of tokens
    Returns:
      None
    '''

    add = self.matrix.add
    for id1, id2, weight in self.pairs(self.tokens.ids(document)):
      add(id1, id2, weight)
      add(id2, id1, weight)

  def _add_locked(self, document):

    matrix, add = self.matrix, self.locks.add
    for id1, id2, weight in self.pairs(self.tokens.ids(document)):
      add(matrix, id1, id2, weight)
      add(matrix, id2, id1, weight)

  def _worker_loop(self, job_queue, errors):

    while True:
      document = job_queue.get()
      if document is None:
        break
      try:
        self._add_locked(document)
      except Exception as e:
        errors.append(e)

  def add_all(self, documents, workers=None, verbose=False):
    '''adds all co-occurrences from a stream of tokenized documents using parallel workers
    Args:
      documents: iterable of lists of tokens
      workers: number of worker threads; if None uses one per available CPU
      verbose: display progress
    Returns:
      number of documents processed
    '''

    workers = nworkers(workers)
    job_queue = Queue(maxsize=QUEUE_FACTOR*workers)
    errors = []
    threads = [threading.Thread(target=self._worker_loop, args=(job_queue, errors)) for _ in range(workers)]
    for thread in threads:
      thread.daemon = True
      thread.start()

    t = time.time()
    n = 0
    try:
      for document in documents:
        job_queue.put(document)
        n += 1
        if not n % CHUNK:
          write('\rProcessed '+str(n)+' Documents, Time='+str(round(time.time()-t))+' sec', verbose)
    finally:
      for _ in threads:
        job_queue.put(None)
      for thread in threads:
        thread.join()

    if errors:
      raise errors[0]
    return n


def cooc_count(corpusfile, vocabfile, coocfile=None, window=10, weight_words=True, workers=None, verbose=True, **kwargs):
  '''counts token co-occurrences in a corpus
  Args:
    corpusfile: corpus .txt file with one document per line
    vocabfile: vocab .txt file
    coocfile: output file for the persisted co-occurrence matrix; if None nothing is written
    window: length of co-occurrence window; 0 counts the whole document
    weight_words: weight co-occurrences by inverse distance
    workers: number of worker threads; if None uses one per available CPU
    verbose: display progress
    kwargs: passed to split_on_punctuation
  Returns:
    SparseMatrix
  '''

  tokens = TokenSet.from_vocabfile(vocabfile)
  counter = CooccurCounter(tokens, window=window, weight_words=weight_words)
  write('\rCounting Cooccurrences with Window Size '+str(window)+'\n', verbose)
  t = time.time()

  documents = read_documents(corpusfile, lambda line: list(split_on_punctuation(line, **kwargs)))
  n = counter.add_all(documents, workers=workers, verbose=verbose)
  write('\rCounted '+str(counter.matrix.num_entries())+' Cooccurrences in '+str(n)+' Documents, Time='+str(round(time.time()-t))+' sec\n', verbose)

  if not coocfile is None:
    dump(counter.matrix, coocfile)
  return counter.matrix
