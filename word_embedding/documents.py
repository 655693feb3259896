import os
import sys


def write(msg, verbose=True):
  '''writes to std out
  Args:
    msg: string
    verbose: if False nothing is written
  Returns:
    length of msg
  '''

  if verbose:
    sys.stdout.write(msg)
    sys.stdout.flush()
  return len(msg)


def nworkers(workers=None):
  '''returns number of parallel workers to use
  Args:
    workers: requested number of workers; if None uses one per available CPU
  Returns:
    int
  '''

  if workers is None:
    return os.cpu_count() or 1
  assert workers > 0, "number of workers must be positive"
  return workers


def read_documents(corpusfile, tokenizer=None):
  '''streams documents from a corpus file with one document per line
  Args:
    corpusfile: corpus .txt file
    tokenizer: function mapping a line to a list of tokens; if None splits on whitespace
  Returns:
    list-of-str generator
  '''

  if tokenizer is None:
    tokenizer = str.split
  with open(corpusfile, 'r', errors='ignore') as f:
    for line in f:
      yield tokenizer(line)
