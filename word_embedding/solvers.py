import argparse
import math
import os
import threading
import time
from collections import namedtuple
from queue import Queue
import numpy as np
from numba import jit
from word_embedding import persist
from word_embedding.cooc import cooc_count
from word_embedding.documents import nworkers
from word_embedding.documents import write
from word_embedding.features import TokenSet
from word_embedding.features import vocab_count
from word_embedding.sparse import WeightedEntryPicker
from word_embedding.vectors import Embedding
from word_embedding.weighting import DEFAULT_POWER
from word_embedding.weighting import DEFAULT_XMAX
from word_embedding.weighting import StandardWeighter


FLOAT = np.float32
# NOTE: default learning rate from the GloVe paper
DEFAULT_RATE = 0.05
MATRIXFIELDS = ['vectors', 'ctx_vectors', 'ada_vectors', 'ada_ctx_vectors']
BIASFIELDS = ['biases', 'ctx_biases', 'ada_biases', 'ada_ctx_biases']


TrainerResult = namedtuple('TrainerResult', ['word_id', 'ctx_id', 'cost', 'grad', 'ctx_grad', 'bias_grad', 'ctx_bias_grad'])


@jit(nopython=True, nogil=True)
def glove_gradients(wvj, cvi, wbj, cbi, logcooc, weight):
    '''cost and gradients of weight*(wvj.cvi + wbj + cbi - logcooc)^2
    Returns:
        (cost, gradient wrt wvj, gradient wrt cvi, gradient wrt either bias)
    '''

    error = wbj + cbi - logcooc
    for k in range(wvj.shape[0]):
        error += wvj[k]*cvi[k]
    werror = weight*error
    coef = 2.0*werror
    return werror*error, coef*cvi, coef*wvj, coef


@jit(nopython=True)
def adagrad_step(param, ssg, grad, eta):
    '''AdaGrad update in place: ssg += grad^2, param -= eta*grad/sqrt(ssg)

    Entries whose accumulated sum of squared gradients is still zero are not moved.
    '''

    for k in range(param.shape[0]):
        ssg[k] += grad[k]*grad[k]
        if ssg[k] > 0.0:
            param[k] -= eta*grad[k]/np.sqrt(ssg[k])


class Trainer:
    '''trains GloVe vectors with the AdaGrad variant of stochastic gradient descent

    Each update samples stored entries of the co-occurrence matrix uniformly.
    Row i of the matrix is a context token and column j a word, so a sampled
    entry (i, j) trains ctx_vectors[i] and vectors[j]. A Trainer can be dumped
    and loaded to pause and resume training.
    '''

    def __init__(self, cooccur, dimension=None, weighter=None, rate=DEFAULT_RATE, workers=None, seed=None, init=None, ssg=None, num_updates=0):
        '''
        Args:
          cooccur: SparseMatrix of co-occurrence counts; must not be modified while training
          dimension: vector dimension
          weighter: co-occurrence weighting function; if None uses StandardWeighter()
          rate: learning rate
          workers: number of gradient worker threads; if None uses one per available CPU
          seed: random seed for initialization and sampling
          init: tuple (vectors, ctx_vectors, biases, ctx_biases) of numpy arrays to initialize parameters
          ssg: tuple (ada_vectors, ada_ctx_vectors, ada_biases, ada_ctx_biases) of AdaGrad accumulators; zeros if None
          num_updates: number of updates already applied
        '''

        assert not (init is None and dimension is None), "'dimension' must be defined if 'init' not given"
        self.cooccur = cooccur
        self.weighter = StandardWeighter() if weighter is None else weighter
        self.rate = rate
        self.workers = nworkers(workers)
        self.num_updates = num_updates
        self._seeds = np.random.SeedSequence(seed)
        self._picker = None

        V = len(cooccur)
        assert cooccur.shape == (V, V), "co-occurrence matrix must be square"
        if init is None:
            rng = np.random.default_rng(self._seeds.spawn(1)[0])
            scale = 1.0/np.sqrt(dimension)
            init = (rng.normal(scale=scale, size=(V, dimension)), rng.normal(scale=scale, size=(V, dimension)), np.zeros(V), np.zeros(V))
        self.vectors, self.ctx_vectors, self.biases, self.ctx_biases = [np.array(param, dtype=FLOAT) for param in init]
        if ssg is None:
            ssg = [np.zeros(param.shape) for param in self.params()]
        self.ada_vectors, self.ada_ctx_vectors, self.ada_biases, self.ada_ctx_biases = [np.array(acc, dtype=FLOAT) for acc in ssg]

        d = self.vectors.shape[1]
        assert self.vectors.shape == self.ctx_vectors.shape == (V, d), "vector matrices must have one row per matrix row"
        assert self.biases.shape == self.ctx_biases.shape == (V,), "bias vectors must have one entry per matrix row"
        for param, acc in zip(self.params(), self.accumulators()):
            assert param.shape == acc.shape, "parameter and accumulator shapes must agree"

    def params(self):

        return [self.vectors, self.ctx_vectors, self.biases, self.ctx_biases]

    def accumulators(self):

        return [self.ada_vectors, self.ada_ctx_vectors, self.ada_biases, self.ada_ctx_biases]

    @property
    def dimension(self):

        return self.vectors.shape[1]

    def _compute_update(self, ctx_id, word_id):

        cooc = self.cooccur.get(ctx_id, word_id)
        if not cooc > 0.0:
            raise ValueError('cannot train on co-occurrence '+str(cooc)+' at ('+str(ctx_id)+', '+str(word_id)+')')
        weight = self.weighter.weight(cooc)
        cost, grad, ctx_grad, coef = glove_gradients(self.vectors[word_id], self.ctx_vectors[ctx_id], self.biases[word_id], self.ctx_biases[ctx_id], math.log(cooc), weight)
        bias_grad = np.array([coef])
        return TrainerResult(word_id, ctx_id, cost, grad, ctx_grad, bias_grad, bias_grad.copy())

    def _worker_loop(self, seed, count, results, errors):

        try:
            rows, cols = self._picker.spawn(seed).pick_many(count)
            for ctx_id, word_id in zip(rows.tolist(), cols.tolist()):
                results.put(self._compute_update(ctx_id, word_id))
        except Exception as e:
            errors.append(e)

    def _apply_update(self, r):

        eta = self.rate
        w, c = r.word_id, r.ctx_id
        adagrad_step(self.vectors[w], self.ada_vectors[w], r.grad, eta)
        adagrad_step(self.ctx_vectors[c], self.ada_ctx_vectors[c], r.ctx_grad, eta)
        adagrad_step(self.biases[w:w+1], self.ada_biases[w:w+1], r.bias_grad, eta)
        adagrad_step(self.ctx_biases[c:c+1], self.ada_ctx_biases[c:c+1], r.ctx_bias_grad, eta)

    def update(self, n):
        '''applies a mini-batch of n sampled updates

        Gradients are computed by parallel worker threads, each with its own
        entry picker, and then applied one at a time by the calling thread.
        Args:
          n: number of samples
        Returns:
          average cost over the mini-batch
        '''

        assert n > 0, "batch size must be positive"
        numentries = self.cooccur.num_entries()
        if not numentries:
            raise ValueError('co-occurrence matrix has no entries')
        if self._picker is None or self._picker.numentries != numentries:
            self._picker = WeightedEntryPicker(self.cooccur)

        workers = min(self.workers, n)
        counts = [n // workers + (i < n % workers) for i in range(workers)]
        results = Queue()
        errors = []
        threads = [threading.Thread(target=self._worker_loop, args=(seed, count, results, errors)) for seed, count in zip(self._seeds.spawn(workers), counts)]
        for thread in threads:
            thread.daemon = True
            thread.start()
        for thread in threads:
            thread.join()
        if errors:
            raise errors[0]

        cost = 0.0
        for _ in range(n):
            result = results.get_nowait()
            self._apply_update(result)
            cost += result.cost
            self.num_updates += 1
        return cost / n

    def loss(self):
        '''weighted least-squares loss averaged over every stored co-occurrence'''

        data, row, col = self.cooccur.coo()
        if not len(data):
            raise ValueError('co-occurrence matrix has no entries')
        errors = np.einsum('ij,ij->i', self.ctx_vectors[row], self.vectors[col], dtype=np.float64) + self.biases[col] + self.ctx_biases[row] - np.log(data)
        return float(np.inner(self.weighter.weights(data)*errors, errors) / len(data))

    def train(self, batches=100, batchsize=100000, verbose=True, cumulative=True):
        '''runs mini-batch AdaGrad on the GloVe objective
        Args:
          batches: number of mini-batches
          batchsize: samples per mini-batch
          verbose: write loss and time information
          cumulative: report the sampled mini-batch cost instead of the true loss; ignored if not verbose
        Returns:
          list of average mini-batch costs
        '''

        write('\rRunning '+str(batches)+' Batches of AdaGrad with Learning Rate '+str(self.rate)+'\n', verbose)
        if verbose and not cumulative:
            write('\rInitial Loss='+str(self.loss())+'\n')

        costs = []
        t = time.time()
        for b in range(batches):
            write('Batch '+str(b+1), verbose)
            costs.append(self.update(batchsize))
            if verbose:
                loss = costs[-1] if cumulative else self.loss()
                write(': Loss='+str(loss)+', Updates='+str(self.num_updates)+', Time='+str(round(time.time()-t))+' sec\n')
                t = time.time()
        return costs

    def embedding(self, tokens, avg=False):
        '''creates an embedding from a copy of the current parameters
        Args:
          tokens: TokenSet whose IDs index the co-occurrence matrix
          avg: average word and context vectors
        Returns:
          Embedding
        '''

        if avg:
            return Embedding(tokens, (self.vectors + self.ctx_vectors) / FLOAT(2.0))
        return Embedding(tokens, self.vectors)

    def serialize(self):

        fields = [persist.encode_matrix(self.cooccur), persist.encode_weighter(self.weighter), persist.encode_float(self.rate)]
        fields.extend(persist.encode_int(dim) for dim in self.vectors.shape)
        fields.extend(persist.encode_array(getattr(self, name)) for name in MATRIXFIELDS + BIASFIELDS)
        fields.append(persist.encode_int(self.num_updates))
        return persist.record(persist.TRAINERTAG, b''.join(fields))

    @classmethod
    def deserialize(cls, payload, workers=None, seed=None):

        reader = persist.Reader(payload, 'Trainer')
        cooccur = reader.decode(persist.MATRIXTAG, 'cooccur', persist.decode_matrix)
        if cooccur.shape != (len(cooccur), len(cooccur)):
            raise reader.error('cooccur', 'co-occurrence matrix must be square but has shape '+str(cooccur.shape))
        weighter = reader.decode(persist.WEIGHTERTAG, 'weighter', persist.decode_weighter)
        rate = reader.read_float('rate')
        V = reader.read_int('rows')
        d = reader.read_int('cols')
        if V != len(cooccur):
            raise reader.error('rows', str(V)+' rows but co-occurrence matrix has '+str(len(cooccur)))
        vectors, ctx_vectors, ada_vectors, ada_ctx_vectors = [reader.read_array(name, (V, d)) for name in MATRIXFIELDS]
        biases, ctx_biases, ada_biases, ada_ctx_biases = [reader.read_array(name, (V,)) for name in BIASFIELDS]
        num_updates = reader.read_int('num_updates')
        reader.finish()
        return cls(cooccur, weighter=weighter, rate=rate, workers=workers, seed=seed, init=(vectors, ctx_vectors, biases, ctx_biases), ssg=(ada_vectors, ada_ctx_vectors, ada_biases, ada_ctx_biases), num_updates=num_updates)

    def dump(self, f):
        '''saves the full training state
        Args:
          f: open binary file object or filename string
        Returns:
          None
        '''

        persist.write_file(f, persist.MAGIC + self.serialize())

    @classmethod
    def load(cls, f, workers=None, seed=None):
        '''restores a Trainer saved with dump
        Args:
          f: open binary file object or filename string
          workers: number of gradient worker threads; if None uses one per available CPU
          seed: random seed for sampling
        Returns:
          Trainer
        '''

        return persist.unwrap(persist.read_file(f), persist.TRAINERTAG, 'Trainer', lambda payload: cls.deserialize(payload, workers=workers, seed=seed))


def main(args):

    resume = args.mode[-5:] == 'glove' and args.trainer and os.path.exists(args.trainer)
    if resume and args.mode[:4] == 'thru':
        write('Skipping Vocabulary and Cooccurrence Counts, Training State Holds Its Own Matrix\n', args.verbose)
    elif args.mode == 'vocab' or args.mode[:4] == 'thru':
        vocab_count(args.input, args.vocab, args.min_count, args.max_tokens, args.verbose)

    if not resume and (args.mode == 'cooc' or args.mode[:4] == 'thru'):
        cooc_count(args.input, args.vocab, args.cooc, args.window_size, not args.unweighted, args.workers, args.verbose)

    if args.mode[-5:] != 'glove':
        if not args.mode in {'vocab', 'cooc', 'thru-cooc'}:
            raise(NotImplementedError)
        return

    if resume:
        write('Resuming from '+args.trainer+'\n', args.verbose)
        trainer = Trainer.load(args.trainer, workers=args.workers)
    else:
        cooccur = persist.load(args.cooc, persist.MATRIXTAG)
        trainer = Trainer(cooccur, args.dimension, StandardWeighter(args.alpha, args.xmax), args.eta, args.workers)
    trainer.train(args.niter, args.batchsize, verbose=args.verbose)
    if args.trainer:
        trainer.dump(args.trainer)
    if args.output:
        trainer.embedding(TokenSet.from_vocabfile(args.vocab), avg=True).dump(args.output)


def parse(argv=None):

    parser = argparse.ArgumentParser(prog='python -m word_embedding.solvers')
    parser.add_argument('mode', help="'vocab', 'cooc', 'glove', 'thru-cooc', or 'thru-glove'")
    parser.add_argument('vocab', help='vocabulary .txt file')
    parser.add_argument('-i', '--input', help='corpus .txt file')
    parser.add_argument('-c', '--cooc', help='co-occurrence matrix file')
    parser.add_argument('-t', '--trainer', help='trainer state file; resumed from if it exists and saved after training')
    parser.add_argument('-o', '--output', help='embedding output file (.txt, or .h5 for HDF5)')
    parser.add_argument('-m', '--min_count', default=1, help='minimum word count in corpus', type=int)
    parser.add_argument('-k', '--max_tokens', default=None, help='maximum vocabulary size', type=int)
    parser.add_argument('-w', '--window_size', default=10, help='size of co-occurrence window (0 for whole document)', type=int)
    parser.add_argument('-u', '--unweighted', action='store_true', help='no distance weighting')
    parser.add_argument('-d', '--dimension', default=300, help='embedding dimension', type=int)
    parser.add_argument('-x', '--xmax', default=DEFAULT_XMAX, help='maximum co-occurrence', type=float)
    parser.add_argument('-a', '--alpha', default=DEFAULT_POWER, help='weighting exponent', type=float)
    parser.add_argument('-n', '--niter', default=25, help='number of mini-batches', type=int)
    parser.add_argument('-b', '--batchsize', default=100000, help='samples per mini-batch', type=int)
    parser.add_argument('-e', '--eta', default=DEFAULT_RATE, help='learning rate', type=float)
    parser.add_argument('-j', '--workers', default=None, help='number of worker threads (default: one per CPU)', type=int)
    parser.add_argument('-v', '--verbose', action='store_true', help='display output')
    return parser.parse_args(argv)


if __name__ == '__main__':

    main(parse())
