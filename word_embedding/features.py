import time
from bisect import bisect_left
from collections import Counter
from operator import itemgetter
from unicodedata import category
from word_embedding.documents import read_documents
from word_embedding.documents import write


PUNCTUATION = {'P'}
MODES = {'separate', 'drop', 'include'}


def ispunct(char):

  return category(char)[0] in PUNCTUATION


def split_on_punctuation(document, mode='separate', preserve_case=False):
  '''tokenizes string by splitting on spaces and handling punctuation
  Args:
    document: string
    mode: 'separate' makes each punctuation character its own token, 'drop' removes punctuation, 'include' treats it as any other character
    preserve_case: do not lowercase tokens
  Returns:
    str generator
  '''

  if not mode in MODES:
    raise(NotImplementedError)

  for token in document.split():
    if not preserve_case:
      token = token.lower()
    if mode == 'include':
      yield token
    elif mode == 'drop':
      token = ''.join(char for char in token if not ispunct(char))
      if token:
        yield token
    else:
      chunk = ''
      for char in token:
        if ispunct(char):
          if chunk:
            yield chunk
          yield char
          chunk = ''
        else:
          chunk += char
      if chunk:
        yield chunk


def tokenize(documents, **kwargs):
  '''tokenizes documents
  Args:
    documents: iterable of strings
    kwargs: passed to split_on_punctuation
  Returns:
    list of list of strings
  '''

  return [list(split_on_punctuation(doc, **kwargs)) for doc in documents]


def feature_counts(documents):
  '''computes feature counts from featurized documents
  Args:
    documents: iterable of lists of hashable features
  Returns:
    dict mapping features to counts
  '''

  return Counter(feat for doc in documents for feat in doc)


def most_common(counts, n):
  '''gets the n features with the most occurrences
  Args:
    counts: dict mapping features to counts
    n: number of features to return; if fewer features exist all are returned
  Returns:
    list of features
  '''

  return [feat for feat, count in sorted(counts.items(), key=itemgetter(1), reverse=True)[:n]]


class TokenSet:
  '''translates between tokens and token IDs

  Tokens are kept sorted and deduplicated, and each token's position is its
  ID. The ID len(tokens) is reserved for tokens not in the set.
  '''

  def __init__(self, tokens=()):

    self.tokens = sorted(set(tokens))

  def __len__(self):

    return len(self.tokens)

  def __iter__(self):

    return iter(self.tokens)

  def __eq__(self, other):

    return isinstance(other, TokenSet) and self.tokens == other.tokens

  def __repr__(self):

    return 'TokenSet(%d tokens)' % len(self.tokens)

  def num_ids(self):
    '''number of IDs including the out-of-vocabulary ID'''

    return len(self.tokens) + 1

  def id(self, token):

    tokens = self.tokens
    idx = bisect_left(tokens, token)
    if idx < len(tokens) and tokens[idx] == token:
      return idx
    return len(tokens)

  def ids(self, tokens):

    return [self.id(token) for token in tokens]

  def token(self, id):
    '''returns the token with the given ID, or '' for the out-of-vocabulary or an invalid ID'''

    if 0 <= id < len(self.tokens):
      return self.tokens[id]
    return ''

  @classmethod
  def from_vocabfile(cls, vocabfile, max_tokens=None):
    '''loads vocabulary file written by vocab_count
    Args:
      vocabfile: .txt file with one 'token count' pair per line
      max_tokens: only load the first max_tokens lines; if None loads all
    Returns:
      TokenSet
    '''

    with open(vocabfile, 'r') as f:
      return cls(line.split()[0] for i, line in enumerate(f) if max_tokens is None or i < max_tokens)


def vocab_count(corpusfile, vocabfile, min_count=1, max_tokens=None, verbose=True, **kwargs):
  '''counts token occurrences to determine vocabulary
  Args:
    corpusfile: corpus .txt file with one document per line
    vocabfile: output .txt file
    min_count: minimum token count
    max_tokens: keep only this many of the most common tokens; if None keeps all
    verbose: display progress
    kwargs: passed to split_on_punctuation
  Returns:
    TokenSet of the written vocabulary
  '''

  write('Counting Tokens with Minimum Count '+str(min_count)+'\n', verbose)
  t = time.time()

  counts = feature_counts(read_documents(corpusfile, lambda line: list(split_on_punctuation(line, **kwargs))))
  counts = {feat: count for feat, count in counts.items() if count >= min_count}
  vocab = most_common(counts, len(counts) if max_tokens is None else max_tokens)
  write('Counted '+str(len(vocab))+' Tokens, Time='+str(round(time.time()-t))+' sec\n', verbose)

  with open(vocabfile, 'w') as f:
    for token in vocab:
      f.write(token+' '+str(counts[token])+'\n')
  return TokenSet(vocab)
